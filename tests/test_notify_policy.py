"""
通知策略测试
"""

import logging

from src.core.notify_policy import NotificationPolicy
from src.core.rarity import Rarity, RarityResolver
from src.models.catalog import Category
from src.models.device import EVENT_LEAD_MINUTES
from src.models.notification import EventDelta, IntentKind, ItemDelta, WeatherDelta

from conftest import make_registration


def _delta(key, qty, category=Category.SEEDS, previous=0, rarity=None):
    return ItemDelta(
        key=key,
        previous_qty=previous,
        current_qty=qty,
        category=category,
        upstream_rarity=rarity,
    )


def _weather(weather_id, active=True):
    return WeatherDelta(
        weather_id=weather_id,
        name=weather_id.title(),
        is_active=active,
        was_active=not active,
    )


def _register(registry, token="device-token-0001", **payload):
    registry.upsert(token, make_registration(token, **payload))


def test_common_items_never_notify(resolver, registry):
    _register(registry, favorite_items=["Carrot"])
    policy = NotificationPolicy(resolver)

    intents = policy.plan([_delta("Carrot", 5)], [], None, registry)

    assert intents == []


def test_rare_favorite_produces_one_category_intent(resolver, registry):
    _register(registry, favorite_items=["Tomato"])
    policy = NotificationPolicy(resolver)

    intents = policy.plan([_delta("Tomato", 2)], [], None, registry)

    assert len(intents) == 1
    intent = intents[0]
    assert intent.kind == IntentKind.CATEGORY_ITEMS
    assert intent.category == Category.SEEDS
    assert [item.key for item in intent.items] == ["Tomato"]
    assert intent.items[0].quantity == 2
    assert intent.items[0].rarity == Rarity.RARE


def test_device_without_favorites_gets_nothing(resolver, registry):
    _register(registry, favorite_items=[])
    policy = NotificationPolicy(resolver)
    assert policy.plan([_delta("Tomato", 2), _delta("Apple", 1)], [], None, registry) == []


def test_premium_items_split_and_others_grouped(resolver, registry):
    _register(
        registry,
        favorite_items=["Ember Lily", "Tomato", "Apple", "Basic Sprinkler", "Beanstalk"],
    )
    policy = NotificationPolicy(resolver)
    deltas = [
        _delta("Apple", 1),
        _delta("Basic Sprinkler", 3, Category.GEAR),
        _delta("Beanstalk", 1),
        _delta("Ember Lily", 1),
        _delta("Tomato", 4),
    ]

    intents = policy.plan(deltas, [], None, registry)

    kinds = [(i.kind, i.category) for i in intents]
    assert kinds == [
        (IntentKind.PREMIUM_ITEM, Category.SEEDS),
        (IntentKind.PREMIUM_ITEM, Category.SEEDS),
        (IntentKind.CATEGORY_ITEMS, Category.SEEDS),
        (IntentKind.CATEGORY_ITEMS, Category.GEAR),
    ]
    assert {i.items[0].key for i in intents[:2]} == {"Beanstalk", "Ember Lily"}
    assert [item.key for item in intents[2].items] == ["Apple", "Tomato"]


def test_premium_tier_is_configurable(resolver, registry):
    _register(registry, favorite_items=["Grape", "Tomato"])
    policy = NotificationPolicy(resolver, premium_rarity=Rarity.DIVINE)

    intents = policy.plan([_delta("Grape", 1), _delta("Tomato", 1)], [], None, registry)

    assert [i.kind for i in intents] == [IntentKind.PREMIUM_ITEM, IntentKind.CATEGORY_ITEMS]


def test_disabled_notifications_skip_device(resolver, registry):
    _register(registry, favorite_items=["Tomato"], notification_settings={"enabled": False})
    policy = NotificationPolicy(resolver)
    assert policy.plan([_delta("Tomato", 2)], [_weather("rain")], None, registry) == []


def test_disabled_category_is_filtered(resolver, registry):
    _register(
        registry,
        favorite_items=["Tomato", "Basic Sprinkler"],
        notification_settings={"category_enabled": {"seeds": False}},
    )
    policy = NotificationPolicy(resolver)

    intents = policy.plan(
        [_delta("Tomato", 2), _delta("Basic Sprinkler", 1, Category.GEAR)], [], None, registry
    )

    assert len(intents) == 1
    assert intents[0].category == Category.GEAR


def test_unclassified_item_warns_once(resolver, registry, caplog):
    _register(registry, favorite_items=["Moon Melon"])
    policy = NotificationPolicy(resolver)

    with caplog.at_level(logging.WARNING, logger="src.core.notify_policy"):
        first = policy.plan([_delta("Moon Melon", 1)], [], None, registry)
        policy.plan([_delta("Moon Melon", 1)], [], None, registry)

    assert len(first) == 1
    assert first[0].items[0].rarity == Rarity.RARE
    warnings = [r for r in caplog.records if "Moon Melon" in r.getMessage()]
    assert len(warnings) == 1


def test_weather_favorites_only_filters(resolver, registry):
    _register(
        registry,
        favorite_weather=["rain"],
        weather_settings={"enabled": True, "mode": "favoritesOnly"},
    )
    policy = NotificationPolicy(resolver)

    intents = policy.plan([], [_weather("rain"), _weather("frost")], None, registry)

    assert len(intents) == 1
    assert [w.weather_id for w in intents[0].weather] == ["rain"]


def test_weather_favorites_only_without_favorites(resolver, registry):
    _register(registry, weather_settings={"mode": "favorites_only"})
    policy = NotificationPolicy(resolver)
    assert policy.plan([], [_weather("rain")], None, registry) == []


def test_weather_all_mode_splits_started_and_ended(resolver, registry):
    _register(registry)
    policy = NotificationPolicy(resolver)

    intents = policy.plan(
        [], [_weather("rain"), _weather("frost", active=False), _weather("windy")], None, registry
    )

    assert [i.kind for i in intents] == [IntentKind.WEATHER_ACTIVE, IntentKind.WEATHER_ENDED]
    assert [w.weather_id for w in intents[0].weather] == ["rain", "windy"]
    assert [w.weather_id for w in intents[1].weather] == ["frost"]


def test_weather_disabled(resolver, registry):
    _register(registry, weather_settings={"enabled": False})
    policy = NotificationPolicy(resolver)
    assert policy.plan([], [_weather("rain")], None, registry) == []


def test_event_fires_once_per_device_at_chosen_lead(resolver, registry):
    _register(registry, "token-lead-5", event_settings={"lead_minutes": 5})
    _register(registry, "token-lead-10", event_settings={"lead_minutes": 10})
    _register(registry, "token-off", event_settings={"enabled": False, "lead_minutes": 5})
    policy = NotificationPolicy(resolver)

    fired = []
    for lead in EVENT_LEAD_MINUTES:
        intents = policy.plan([], [], EventDelta(name="Bee Swarm", minutes_before=lead), registry)
        fired.extend((i.device_token, i.event.minutes_before) for i in intents)

    assert sorted(fired) == [("token-lead-10", 10), ("token-lead-5", 5)]


def test_plan_orders_items_weather_event(registry):
    _register(registry, favorite_items=["Tomato"], event_settings={"lead_minutes": 0})
    policy = NotificationPolicy(RarityResolver())

    intents = policy.plan(
        [_delta("Tomato", 1)],
        [_weather("rain")],
        EventDelta(name="Bee Swarm", minutes_before=0),
        registry,
    )

    assert [i.kind for i in intents] == [
        IntentKind.CATEGORY_ITEMS,
        IntentKind.WEATHER_ACTIVE,
        IntentKind.EVENT,
    ]
