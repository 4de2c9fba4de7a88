import time

import pytest

from flowforge.errors import AuthError
from flowforge.security import SigningKeyVerifier, body_digest, sign

CURRENT = "sig_current_0123456789abcdef0123456789abcdef"
NEXT = "sig_next_0123456789abcdef0123456789abcdef0123"
URL = "https://flows.example.com/api/qstash/webhook"
BODY = b'{"workflowId":"wf_1","trigger":"cron","source":"qstash"}'


@pytest.fixture
def verifier() -> SigningKeyVerifier:
    return SigningKeyVerifier(CURRENT, NEXT)


def test_current_key_signature_verifies(verifier):
    claims = verifier.verify(sign(CURRENT, BODY, URL), BODY, URL)
    assert claims["sub"] == URL
    assert claims["body"] == body_digest(BODY)


def test_next_key_signature_verifies_during_rotation(verifier):
    assert verifier.verify(sign(NEXT, BODY, URL), BODY, URL)["iss"] == "Upstash"


def test_unknown_key_is_rejected(verifier):
    with pytest.raises(AuthError):
        verifier.verify(sign("someone_else_0123456789abcdef0123456789", BODY, URL), BODY, URL)


def test_tampered_body_is_rejected(verifier):
    signature = sign(CURRENT, BODY, URL)
    with pytest.raises(AuthError):
        verifier.verify(signature, BODY.replace(b"wf_1", b"wf_2"), URL)


def test_signature_for_other_url_is_rejected(verifier):
    signature = sign(CURRENT, BODY, "https://evil.example.com/hook")
    with pytest.raises(AuthError):
        verifier.verify(signature, BODY, URL)


def test_expired_signature_is_rejected(verifier):
    signature = sign(CURRENT, BODY, URL, ttl_seconds=60, now=time.time() - 3600)
    with pytest.raises(AuthError):
        verifier.verify(signature, BODY, URL)


def test_wrong_issuer_is_rejected(verifier):
    with pytest.raises(AuthError):
        verifier.verify(sign(CURRENT, BODY, URL, issuer="Someone"), BODY, URL)


@pytest.mark.parametrize("signature", [None, "", "not-a-jwt"])
def test_missing_or_garbage_signature_is_rejected(verifier, signature):
    with pytest.raises(AuthError):
        verifier.verify(signature, BODY, URL)


def test_verifier_without_keys_rejects_everything():
    with pytest.raises(AuthError):
        SigningKeyVerifier(None, None).verify(sign(CURRENT, BODY, URL), BODY, URL)


def test_body_digest_is_unpadded_base64url():
    digest = body_digest("hello")
    assert "=" not in digest
    assert "+" not in digest and "/" not in digest
    assert digest == body_digest(b"hello")
