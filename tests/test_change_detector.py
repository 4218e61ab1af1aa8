"""
变化检测测试
"""

from datetime import datetime

from src.core.change_detector import (
    detect_event_trigger,
    detect_item_changes,
    detect_weather_changes,
    event_changed,
    summarize_item_changes,
)
from src.models.catalog import CatalogSnapshot, EventState, WeatherSnapshot
from src.models.notification import DetectionMode, ItemChangeKind

from conftest import make_catalog, make_weather


def test_restock_with_same_quantity_still_reported():
    """售罄后以相同数量补货：数量不变也要检出"""
    previous = make_catalog({"Apple": 3})
    current = make_catalog({"Apple": 3})

    deltas = detect_item_changes(previous, current, {"Apple"})

    assert len(deltas) == 1
    assert deltas[0].key == "Apple"
    assert deltas[0].current_qty == 3
    assert deltas[0].kind == ItemChangeKind.UNCHANGED


def test_out_of_stock_items_are_not_reported():
    previous = make_catalog({"Tomato": 4})
    current = make_catalog({"Tomato": 0})
    assert detect_item_changes(previous, current, {"Tomato", "Bamboo"}) == []


def test_only_tracked_keys_are_checked():
    current = make_catalog({"Tomato": 2, "Apple": 1, "Bamboo": 5})
    deltas = detect_item_changes(CatalogSnapshot(), current, ["Bamboo", "Tomato"])
    assert [d.key for d in deltas] == ["Bamboo", "Tomato"]
    assert deltas[1].previous_qty == 0
    assert deltas[1].kind == ItemChangeKind.APPEARED


def test_availability_mode_uses_same_rule():
    current = make_catalog({"Tomato": 2})
    restock = detect_item_changes(current, current, {"Tomato"}, DetectionMode.RESTOCK)
    availability = detect_item_changes(current, current, {"Tomato"}, DetectionMode.AVAILABILITY)
    assert restock == availability


def test_summarize_item_changes():
    previous = make_catalog({"Tomato": 0, "Apple": 3, "Bamboo": 2, "Carrot": 5})
    current = make_catalog({"Tomato": 4, "Apple": 0, "Bamboo": 7, "Carrot": 5})

    summary = summarize_item_changes(previous, current)

    assert summary.changed == 3
    assert summary.restocked == 1
    assert summary.sold_out == 1


def test_weather_flip_detected():
    previous = make_weather({"rain": False, "thunderstorm": True})
    current = make_weather({"rain": True, "thunderstorm": False})

    deltas = detect_weather_changes(previous, current)

    assert [(d.weather_id, d.is_active) for d in deltas] == [
        ("rain", True),
        ("thunderstorm", False),
    ]
    assert deltas[1].was_active is True


def test_weather_started_listed_before_ended():
    previous = make_weather({"frost": True})
    current = make_weather({"frost": False, "rain": True})

    deltas = detect_weather_changes(previous, current)

    assert [d.weather_id for d in deltas] == ["rain", "frost"]


def test_weather_missing_from_current_is_implicitly_ended():
    previous = make_weather({"blood_moon": True, "rain": False})
    current = make_weather({})

    deltas = detect_weather_changes(previous, current)

    assert len(deltas) == 1
    assert deltas[0].weather_id == "blood_moon"
    assert deltas[0].is_active is False
    assert deltas[0].was_active is True


def test_new_inactive_weather_is_not_a_change():
    assert detect_weather_changes(WeatherSnapshot(), make_weather({"rain": False})) == []


def test_unchanged_weather_is_not_a_change():
    snapshot = make_weather({"rain": True})
    assert detect_weather_changes(snapshot, snapshot) == []


def test_event_trigger_at_start_minute():
    event = EventState(name="Bee Swarm", corrected_trigger_minute=30)
    delta = detect_event_trigger(event, datetime(2026, 1, 1, 12, 30, 5))
    assert delta is not None
    assert delta.minutes_before == 0
    assert delta.name == "Bee Swarm"


def test_event_trigger_lead_minutes():
    event = EventState(name="Bee Swarm", corrected_trigger_minute=30)
    assert detect_event_trigger(event, datetime(2026, 1, 1, 12, 25, 0)).minutes_before == 5
    assert detect_event_trigger(event, datetime(2026, 1, 1, 12, 15, 0)).minutes_before == 15
    assert detect_event_trigger(event, datetime(2026, 1, 1, 12, 24, 0)) is None


def test_event_trigger_wraps_around_the_hour():
    event = EventState(name="Night Event", corrected_trigger_minute=2)
    delta = detect_event_trigger(event, datetime(2026, 1, 1, 12, 57, 10))
    assert delta is not None
    assert delta.minutes_before == 5


def test_event_trigger_outside_tolerance():
    event = EventState(name="Bee Swarm", corrected_trigger_minute=30)
    assert detect_event_trigger(event, datetime(2026, 1, 1, 12, 30, 30)) is None
    assert detect_event_trigger(event, datetime(2026, 1, 1, 12, 30, 29)) is not None


def test_event_trigger_without_event():
    assert detect_event_trigger(None, datetime(2026, 1, 1, 12, 0, 0)) is None


def test_event_changed():
    bee = EventState(name="Bee Swarm", corrected_trigger_minute=30)
    assert not event_changed(bee, EventState(name="Bee Swarm", corrected_trigger_minute=30))
    assert event_changed(bee, EventState(name="Bee Swarm", corrected_trigger_minute=31))
    assert event_changed(None, bee)
    assert event_changed(bee, None)
    assert not event_changed(None, None)
