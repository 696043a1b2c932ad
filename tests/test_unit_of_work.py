import logging

import pytest

from pixmap_persistence.base.exceptions import InvalidStateError
from pixmap_persistence.config import PersistenceSettings
from pixmap_persistence.domain.location import Location
from pixmap_persistence.domain.setting import Setting
from pixmap_persistence.domain.tip import Tip, TipType
from pixmap_persistence.domain.values import Coordinate
from pixmap_persistence.unit_of_work import UnitOfWork


async def test_repositories_share_the_context(unit_of_work, db_context):
    for repository in (
        unit_of_work.locations,
        unit_of_work.settings,
        unit_of_work.tip_types,
        unit_of_work.tips,
        unit_of_work.weather,
        unit_of_work.subscriptions,
        unit_of_work.camera_bodies,
    ):
        assert repository.context is db_context
    assert unit_of_work.context is db_context


async def test_commit_spans_repositories(unit_of_work, db_context):
    """Writes through several repositories commit together."""
    await unit_of_work.begin_transaction()
    tip_type = await unit_of_work.tip_types.create(TipType.create("Night"))
    await unit_of_work.tips.create(Tip.create(tip_type.id, "Use a tripod"))
    await unit_of_work.settings.create(Setting.create("LastTipType", str(tip_type.id)))
    await unit_of_work.commit()

    assert not db_context.in_transaction
    assert await unit_of_work.tips.count_by_tip_type(tip_type.id) == 1
    assert (await unit_of_work.settings.get_by_key("LastTipType")).value == str(tip_type.id)
    assert await unit_of_work.save_changes() == 1
    assert await unit_of_work.save_changes() == 0


async def test_rollback_spans_repositories(unit_of_work):
    await unit_of_work.begin_transaction()
    await unit_of_work.locations.create(
        Location.create("Pier", Coordinate(latitude=47.6, longitude=-122.3))
    )
    await unit_of_work.settings.create(Setting.create("Draft", "1"))
    await unit_of_work.rollback()

    assert await unit_of_work.locations.get_all() == []
    assert await unit_of_work.settings.get_by_key("Draft") is None
    assert await unit_of_work.save_changes() == 0


async def test_execute_in_transaction_rolls_back_on_error(unit_of_work):
    async def work():
        await unit_of_work.settings.create(Setting.create("Partial", "1"))
        raise RuntimeError("stop")

    with pytest.raises(RuntimeError):
        await unit_of_work.execute_in_transaction(work)

    assert await unit_of_work.settings.get_by_key("Partial") is None


async def test_begin_twice_fails(unit_of_work):
    await unit_of_work.begin_transaction()
    with pytest.raises(InvalidStateError):
        await unit_of_work.begin_transaction()
    await unit_of_work.rollback()


async def test_exit_rolls_back_uncommitted_transaction(unit_of_work, db_context):
    """Leaving the block with an open transaction discards its writes."""
    async with unit_of_work as uow:
        await uow.begin_transaction()
        await uow.settings.create(Setting.create("Unsaved", "1"))

    assert unit_of_work.is_disposed
    assert not db_context.in_transaction
    assert await db_context.count("SELECT COUNT(*) FROM settings") == 0


async def test_exit_does_not_commit_implicitly(unit_of_work, db_context):
    async with unit_of_work as uow:
        await uow.settings.create(Setting.create("Direct", "1"))

    # Writes outside an explicit transaction are already durable.
    assert await db_context.count("SELECT COUNT(*) FROM settings") == 1


async def test_disposed_unit_of_work_rejects_use(unit_of_work):
    await unit_of_work.dispose()
    await unit_of_work.dispose()

    with pytest.raises(InvalidStateError):
        await unit_of_work.begin_transaction()
    with pytest.raises(InvalidStateError):
        await unit_of_work.save_changes()
    with pytest.raises(InvalidStateError):
        async with unit_of_work:
            pass


async def test_open_creates_file_database(tmp_path):
    settings = PersistenceSettings(database_path=str(tmp_path / "uow.db"))
    uow = await UnitOfWork.open(settings)
    try:
        await uow.settings.upsert("Opened", "yes")
        assert (await uow.settings.get_by_key("Opened")).value == "yes"
        assert uow.settings.cache.ttl == settings.cache_ttl
    finally:
        await uow.close()

    reopened = await UnitOfWork.open(settings)
    try:
        assert (await reopened.settings.get_by_key("Opened")).value == "yes"
    finally:
        await reopened.close()


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


async def test_repositories_log_through_the_unit_of_work_logger(db_context):
    handler = RecordingHandler()
    base = logging.getLogger("pixmap_uow_caller")
    base.addHandler(handler)
    base.setLevel(logging.INFO)
    try:
        uow = UnitOfWork(db_context, logger=logging.LoggerAdapter(base, {"request_id": "r-1"}))
        await uow.settings.create(Setting.create("Logged", "1"))
        await uow.tip_types.create(TipType.create("Macro"))
    finally:
        base.removeHandler(handler)

    messages = [record.getMessage() for record in handler.records]
    assert any("'Logged'" in message for message in messages)
    assert any("'Macro'" in message for message in messages)
    assert all(record.request_id == "r-1" for record in handler.records)
