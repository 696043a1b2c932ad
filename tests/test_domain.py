from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from pixmap_persistence.base.utils import (bind_params, chunked,
                                           from_epoch_millis, placeholders,
                                           to_epoch_millis)
from pixmap_persistence.config import PersistenceSettings
from pixmap_persistence.domain.location import Location
from pixmap_persistence.domain.paging import PagedList
from pixmap_persistence.domain.setting import Setting
from pixmap_persistence.domain.subscription import Subscription, SubscriptionStatus
from pixmap_persistence.domain.tip import Tip, TipType
from pixmap_persistence.domain.values import Address, Coordinate, WindInfo
from pixmap_persistence.domain.weather import WeatherForecast


# --- Value Objects ---


def test_coordinate_bounds():
    Coordinate(latitude=90, longitude=-180)
    with pytest.raises(ValidationError):
        Coordinate(latitude=90.01, longitude=0)
    with pytest.raises(ValidationError):
        Coordinate(latitude=0, longitude=180.5)


def test_coordinate_distance():
    seattle = Coordinate(latitude=47.6062, longitude=-122.3321)
    portland = Coordinate(latitude=45.5152, longitude=-122.6784)

    assert seattle.distance_to(portland) == pytest.approx(234, abs=3)
    assert seattle.is_within_distance(portland, 250)
    assert not seattle.is_within_distance(portland, 200)
    assert seattle.distance_to(seattle) == 0
    assert str(seattle) == "47.606200, -122.332100"


def test_wind_cardinal_direction():
    assert WindInfo(direction=0).cardinal_direction == "N"
    assert WindInfo(direction=359).cardinal_direction == "N"
    assert WindInfo(direction=90).cardinal_direction == "E"
    assert WindInfo(direction=200).cardinal_direction == "SSW"
    with pytest.raises(ValidationError):
        WindInfo(speed=-1)


def test_address_str():
    assert str(Address(city="Seattle", state="WA")) == "Seattle, WA"
    assert str(Address(state="WA")) == "WA"


# --- Entities ---


def test_entities_are_immutable_and_with_id_copies():
    location = Location.create("Pier", Coordinate(latitude=1, longitude=2))
    assert not location.is_persisted

    saved = location.with_id(7)
    assert saved.id == 7 and saved.is_persisted
    assert location.id == 0
    with pytest.raises(ValidationError):
        saved.title = "Changed"
    with pytest.raises(ValueError):
        location.with_id(0)


def test_location_mutators_return_copies():
    location = Location.create("Pier", Coordinate(latitude=1, longitude=2)).with_id(3)

    with_photo = location.attach_photo("/p.jpg")
    assert with_photo.photo_path == "/p.jpg" and location.photo_path is None
    assert with_photo.remove_photo().photo_path is None
    assert with_photo.id == 3
    assert location.delete().is_deleted and not location.delete().restore().is_deleted
    with pytest.raises(ValueError):
        location.attach_photo(" ")
    with pytest.raises(ValidationError):
        location.update_details("", "x")


def test_setting_conversions():
    assert Setting.create("flag", "TRUE").as_bool()
    assert not Setting.create("flag", "yes").as_bool()
    assert Setting.create("n", " 42 ").as_int() == 42
    assert Setting.create("n", "x").as_int(default=7) == 7
    assert Setting.create("f", "2.5").as_float() == 2.5
    assert Setting.create("d", "2024-06-01T12:00:00+00:00").as_datetime() == datetime(
        2024, 6, 1, 12, tzinfo=timezone.utc
    )
    assert Setting.create("d", "not a date").as_datetime() is None
    assert not Setting.create("blank", "  ").has_value
    assert Setting.create("k", "v", "desc").display_string() == "k: v (desc)"
    assert Setting.create("k", "v").display_string() == "k: v"


def test_tip_localization_defaults():
    assert TipType.create("Portrait").set_localization(None).i8n == "en-US"
    tip = Tip.create(1, "Title").set_localization("de-DE")
    assert tip.i8n == "de-DE"
    with pytest.raises(ValidationError):
        Tip.create(0, "Title")


def test_subscription_lifecycle():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    sub = Subscription.create("u", "p", "t", "tok", start, start + timedelta(days=30))

    assert sub.is_active(start)
    assert not sub.is_expired(start)
    assert sub.is_expired(start + timedelta(days=30))
    assert sub.needs_verification(start)
    assert not sub.mark_as_verified(start).needs_verification(start + timedelta(hours=1))

    renewed = sub.renew(start + timedelta(days=60))
    assert renewed.renewal_count == 1 and renewed.status == SubscriptionStatus.ACTIVE
    expired = renewed.expire()
    assert expired.status == SubscriptionStatus.EXPIRED and not expired.auto_renewing
    assert not expired.needs_verification(start)


def test_moon_phase_description():
    base = dict(
        forecast_date=datetime(2024, 6, 1).date(),
        sunrise=datetime(2024, 6, 1, 5),
        sunset=datetime(2024, 6, 1, 21),
        temperature=1,
        min_temperature=0,
        max_temperature=2,
    )
    assert WeatherForecast(moon_phase=0.0, **base).moon_phase_description == "New Moon"
    assert WeatherForecast(moon_phase=0.5, **base).moon_phase_description == "Full Moon"
    assert WeatherForecast(moon_phase=0.75, **base).moon_phase_description == "Last Quarter"
    assert WeatherForecast(moon_phase=0.9, **base).moon_phase_description == "Waning Crescent"


def test_paged_list():
    page = PagedList(items=[1, 2], page_number=2, page_size=2, total_count=5)
    assert page.total_pages == 3
    assert page.has_previous_page and page.has_next_page
    assert not PagedList(items=[], page_number=1, page_size=10, total_count=0).has_next_page


# --- Utilities and Configuration ---


def test_epoch_millis_round_trip_truncates_to_milliseconds():
    value = datetime(2024, 6, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)
    millis = to_epoch_millis(value)
    assert millis == 1717245015123
    assert from_epoch_millis(millis) == value.replace(microsecond=123000)


def test_naive_datetimes_are_treated_as_utc():
    assert to_epoch_millis(datetime(1970, 1, 1, 0, 0, 1)) == 1000


def test_chunked_and_placeholders():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []
    with pytest.raises(ValueError):
        chunked([1], 0)
    assert placeholders(3) == "?, ?, ?"
    with pytest.raises(ValueError):
        placeholders(0)


def test_bind_params_converts_values():
    when = datetime(1970, 1, 1, 0, 0, 2, tzinfo=timezone.utc)
    assert bind_params([True, SubscriptionStatus.ACTIVE, when, None, 1.5]) == (1, "ACTIVE", 2000, None, 1.5)
    with pytest.raises(TypeError):
        bind_params("abc")


def test_persistence_settings_validation():
    settings = PersistenceSettings()
    assert settings.database_path == "locations.db"
    assert settings.cache_ttl == timedelta(minutes=15)
    with pytest.raises(ValidationError):
        PersistenceSettings(batch_size=0)
    with pytest.raises(ValidationError):
        PersistenceSettings(cache_ttl=timedelta(0))
    with pytest.raises(ValidationError):
        PersistenceSettings(database_path="  ")
