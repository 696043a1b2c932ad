import pytest

from pixmap_persistence.base.exceptions import ErrorCode, RepositoryException
from pixmap_persistence.base.result import Result
from pixmap_persistence.domain.setting import Setting
from pixmap_persistence.repositories.adapters import RepositoryAdapter


@pytest.fixture
def settings_adapter(setting_repository):
    return RepositoryAdapter(setting_repository)


async def test_success_results(settings_adapter):
    created = await settings_adapter.create(Setting.create("Units", "metric"))
    assert created.is_success
    assert created.value.id > 0

    fetched = await settings_adapter.get_by_id(created.value.id)
    assert fetched.is_success
    assert fetched.unwrap().key == "Units"

    everything = await settings_adapter.get_all()
    assert [s.key for s in everything.value] == ["Units"]


async def test_missing_entity_is_a_successful_none(settings_adapter):
    result = await settings_adapter.get_by_id(404)
    assert result.is_success
    assert result.value is None

    deleted = await settings_adapter.delete("missing")
    assert deleted.is_success
    assert deleted.value is False


async def test_failures_carry_code_operation_and_message(settings_adapter):
    await settings_adapter.create(Setting.create("Units", "metric"))

    result = await settings_adapter.create(Setting.create("Units", "imperial"))

    assert result.is_failure
    assert result.error_code == ErrorCode.DUPLICATE_KEY
    assert result.operation == "Create"
    assert "Units" in result.message
    with pytest.raises(RepositoryException) as exc_info:
        result.unwrap()
    assert exc_info.value.code == ErrorCode.DUPLICATE_KEY

    update = await settings_adapter.update(Setting.create("Nope", "x"))
    assert update.error_code == ErrorCode.NOT_FOUND


async def test_call_entity_specific_methods(settings_adapter):
    await settings_adapter.call("upsert", "Theme", "dark")

    result = await settings_adapter.call("get_by_key", "Theme")
    assert result.is_success
    assert result.value.value == "dark"

    with pytest.raises(AttributeError):
        await settings_adapter.call("_map_row")
    with pytest.raises(AttributeError):
        await settings_adapter.call("does_not_exist")


def test_result_factories():
    ok = Result.success(3)
    assert ok.is_success and not ok.is_failure
    assert ok.unwrap() == 3

    failed = Result.failure(ErrorCode.TIMEOUT, "too slow", "GetByKey")
    assert failed.is_failure
    assert failed.operation == "GetByKey"
