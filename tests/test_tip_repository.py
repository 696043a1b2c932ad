import pytest

from pixmap_persistence.base.exceptions import (ErrorCode,
                                                KeyAlreadyExistsException,
                                                ObjectNotFoundException,
                                                RepositoryException)
from pixmap_persistence.domain.tip import Tip, TipType


async def test_tip_type_round_trip(tip_type_repository, saved_tip_type):
    fetched = await tip_type_repository.get_by_name("Landscape")
    assert fetched.model_dump() == saved_tip_type.model_dump()
    assert fetched.i8n == "en-US"


async def test_tip_type_duplicate_name(tip_type_repository, saved_tip_type):
    with pytest.raises(KeyAlreadyExistsException) as exc_info:
        await tip_type_repository.create(TipType.create("Landscape"))
    assert exc_info.value.code == ErrorCode.DUPLICATE_KEY


async def test_tip_type_update(tip_type_repository, saved_tip_type):
    await tip_type_repository.update(saved_tip_type.set_localization("fr-FR"))
    assert (await tip_type_repository.get_by_id(saved_tip_type.id)).i8n == "fr-FR"

    with pytest.raises(ObjectNotFoundException):
        await tip_type_repository.update(saved_tip_type.model_copy(update={"id": 77}))


async def test_create_and_update_tip(tip_repository, saved_tip_type):
    tip = await tip_repository.create(
        Tip.create(saved_tip_type.id, "Golden hour", "Shoot just after sunrise")
    )
    assert tip.id > 0

    changed = tip.update_photography_settings("f/8", "1/125", "ISO 100")
    await tip_repository.update(changed)

    fetched = await tip_repository.get_by_id(tip.id)
    assert fetched.model_dump() == changed.model_dump()


async def test_tip_for_missing_type_is_constraint_violation(tip_repository):
    with pytest.raises(RepositoryException) as exc_info:
        await tip_repository.create(Tip.create(999, "Orphan"))
    assert exc_info.value.code == ErrorCode.CONSTRAINT_VIOLATION
    assert exc_info.value.operation == "Create"


async def test_update_missing_tip(tip_repository, saved_tip_type):
    ghost = Tip.create(saved_tip_type.id, "Ghost").with_id(404)
    with pytest.raises(ObjectNotFoundException):
        await tip_repository.update(ghost)


async def test_delete_tip(tip_repository, saved_tip_type):
    tip = await tip_repository.create(Tip.create(saved_tip_type.id, "Temp"))
    assert await tip_repository.delete(tip.id) is True
    assert await tip_repository.delete(tip.id) is False
    assert await tip_repository.get_by_id(tip.id) is None


async def test_deleting_tip_type_cascades(tip_type_repository, tip_repository, saved_tip_type):
    await tip_repository.create(Tip.create(saved_tip_type.id, "One"))
    await tip_repository.create(Tip.create(saved_tip_type.id, "Two"))

    assert await tip_type_repository.delete(saved_tip_type.id) is True
    assert await tip_repository.count_by_tip_type(saved_tip_type.id) == 0


async def test_create_bulk_assigns_ids(tip_repository, saved_tip_type):
    tips = [Tip.create(saved_tip_type.id, f"Tip {i:02d}") for i in range(25)]

    created = await tip_repository.create_bulk(tips)

    assert len(created) == 25
    assert len({t.id for t in created}) == 25
    assert await tip_repository.count_by_tip_type(saved_tip_type.id) == 25


async def test_create_bulk_is_all_or_nothing(tip_repository, saved_tip_type):
    tips = [Tip.create(saved_tip_type.id, f"Tip {i}") for i in range(5)]
    tips.insert(3, Tip.create(999, "Bad reference"))

    with pytest.raises(RepositoryException) as exc_info:
        await tip_repository.create_bulk(tips)

    assert exc_info.value.operation == "CreateBulk"
    assert await tip_repository.count_by_tip_type(saved_tip_type.id) == 0


async def test_update_bulk_rolls_back_on_missing_id(tip_repository, saved_tip_type):
    created = await tip_repository.create_bulk(
        [Tip.create(saved_tip_type.id, f"Tip {i}", "old") for i in range(3)]
    )
    changed = [t.update_content(t.title, "new") for t in created]
    assert await tip_repository.update_bulk(changed) == 3

    again = [t.update_content(t.title, "newer") for t in changed]
    again.append(Tip.create(saved_tip_type.id, "Ghost").with_id(9999))
    with pytest.raises(ObjectNotFoundException):
        await tip_repository.update_bulk(again)

    contents = {t.content for t in await tip_repository.get_by_tip_type_id(saved_tip_type.id)}
    assert contents == {"new"}


async def test_delete_bulk(tip_repository, saved_tip_type):
    created = await tip_repository.create_bulk(
        [Tip.create(saved_tip_type.id, f"Tip {i}") for i in range(15)]
    )
    ids = [t.id for t in created[:12]]

    assert await tip_repository.delete_bulk(ids + ids[:2]) == 12
    assert await tip_repository.count_by_tip_type(saved_tip_type.id) == 3
    assert await tip_repository.delete_bulk([]) == 0


async def test_tip_queries(tip_repository, saved_tip_type):
    await tip_repository.create(Tip.create(saved_tip_type.id, "Rule of thirds", "Place subjects off-center"))
    await tip_repository.create(Tip.create(saved_tip_type.id, "Leading lines", "Use roads and rivers"))

    titles = [t.title for t in await tip_repository.get_by_tip_type_id(saved_tip_type.id)]
    assert titles == ["Leading lines", "Rule of thirds"]

    assert (await tip_repository.get_by_title("Leading lines")).content == "Use roads and rivers"
    assert [t.title for t in await tip_repository.search_by_content("rivers")] == ["Leading lines"]

    random_tip = await tip_repository.get_random_by_type(saved_tip_type.id)
    assert random_tip.title in titles
    assert await tip_repository.get_random_by_type(12345) is None
