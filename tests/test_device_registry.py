"""
设备注册测试
"""

import pytest

from src.models.catalog import Category
from src.models.device import (
    DEFAULT_EVENT_LEAD_MINUTES,
    DeviceRegistration,
    WeatherMode,
)


def test_registration_defaults():
    registration = DeviceRegistration.from_payload({"device_token": "abc"})

    assert registration.favorite_item_keys == frozenset()
    assert registration.notification_settings.enabled is True
    assert registration.notification_settings.sound_enabled is True
    assert registration.weather_settings.mode == WeatherMode.ALL
    assert registration.event_settings.enabled is True
    assert registration.event_settings.lead_minutes == DEFAULT_EVENT_LEAD_MINUTES


def test_registration_requires_token():
    with pytest.raises(ValueError):
        DeviceRegistration.from_payload({"favorite_items": ["Tomato"]})
    with pytest.raises(ValueError):
        DeviceRegistration.from_payload({"device_token": "   "})


def test_registration_parses_settings():
    registration = DeviceRegistration.from_payload(
        {
            "device_token": "abc",
            "favorite_items": ["Tomato", " ", "Apple"],
            "favorite_weather": "rain",
            "notification_settings": {
                "enabled": "true",
                "category_enabled": {"gear": False, "unknown": False},
            },
            "weather_settings": {"mode": "favoritesOnly"},
            "event_settings": {"lead_minutes": 7},
        }
    )

    assert registration.favorite_item_keys == {"Tomato", "Apple"}
    assert registration.favorite_weather_ids == {"rain"}
    assert registration.notification_settings.allows(Category.SEEDS)
    assert not registration.notification_settings.allows(Category.GEAR)
    assert "unknown" not in registration.notification_settings.category_enabled
    assert registration.weather_settings.mode == WeatherMode.FAVORITES_ONLY
    assert registration.event_settings.lead_minutes == DEFAULT_EVENT_LEAD_MINUTES


def test_upsert_replaces_wholesale(registry):
    registry.register({"device_token": "abc", "favorite_items": ["Tomato", "Apple"]})
    registry.register({"device_token": "abc", "favorite_items": ["Bamboo"]})

    assert len(registry) == 1
    assert registry.get("abc").favorite_item_keys == {"Bamboo"}


def test_favorite_item_keys_union(registry):
    registry.register({"device_token": "a", "favorite_items": ["Tomato"]})
    registry.register({"device_token": "b", "favorite_items": ["Tomato", "Bamboo"]})
    assert registry.favorite_item_keys() == {"Tomato", "Bamboo"}


def test_debug_summary_masks_tokens(registry):
    token = "0123456789abcdefghijklmnop"
    registry.register({"device_token": token, "favorite_items": ["Tomato"]})

    summary = registry.debug_summary()

    assert summary[0]["device_token_preview"] == "0123456789..."
    assert token not in str(summary)
    assert summary[0]["favorites_count"] == 1


def test_snapshot_is_a_copy(registry):
    registry.register({"device_token": "a"})
    devices = registry.snapshot()
    registry.register({"device_token": "b"})
    assert len(devices) == 1


def test_non_object_settings_fall_back_to_defaults():
    registration = DeviceRegistration.from_payload(
        {
            "device_token": "abc",
            "notification_settings": ["enabled"],
            "weather_settings": "favoritesOnly",
            "event_settings": 10,
        }
    )

    assert registration.notification_settings.enabled is True
    assert registration.weather_settings.mode == WeatherMode.ALL
    assert registration.event_settings.lead_minutes == DEFAULT_EVENT_LEAD_MINUTES


def test_non_object_payload_is_rejected(registry):
    with pytest.raises(ValueError):
        registry.register(["abc"])
    assert len(registry) == 0
