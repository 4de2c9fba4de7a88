import pytest

from flowforge.db import WorkflowDB
from flowforge.definitions import get_definition_store
from tests.conftest import make_workflow


@pytest.mark.asyncio
async def test_workflow_db_lifecycle(tmp_path):
    db = WorkflowDB(f"sqlite+aiosqlite:///{tmp_path / 'defs.db'}")
    await db.init_db()

    workflow = make_workflow(
        "wf_1",
        schedule="11",
        actions=[{"id": "a1", "type": "http", "config": {"url": "https://example.com"}}],
    )
    await db.save(workflow)

    stored = await db.get_by_id("wf_1")
    assert stored.model_dump() == workflow.model_dump()
    assert stored.cron_config.schedule == "11"
    assert await db.get_by_id("missing") is None

    await db.set_active("wf_1", False)
    assert not (await db.get_by_id("wf_1")).is_active
    await db.set_active("missing", True)

    await db.save(make_workflow("wf_2"))
    assert sorted(w.id for w in await db.list_all()) == ["wf_1", "wf_2"]
    await db.dispose()


@pytest.mark.asyncio
async def test_save_replaces_existing_definition(tmp_path):
    db = WorkflowDB(f"sqlite+aiosqlite:///{tmp_path / 'defs.db'}")

    await db.save(make_workflow("wf_1", schedule="1"))
    await db.save(make_workflow("wf_1", schedule="111", active=False))

    [stored] = await db.list_all()
    assert stored.cron_config.schedule == "111"
    assert not stored.is_active
    await db.dispose()


def test_factory_builds_sql_store(tmp_path):
    store = get_definition_store(f"sqlite+aiosqlite:///{tmp_path / 'defs.db'}")
    assert isinstance(store, WorkflowDB)
