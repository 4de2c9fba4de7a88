"""Request signing for externally scheduled deliveries."""

from .signing import SigningKeyVerifier, body_digest, sign

__all__ = ["SigningKeyVerifier", "body_digest", "sign"]
