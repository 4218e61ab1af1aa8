"""
通知去重测试
"""

import threading

from src.core.notify_dedupe import NotificationDeduper
from src.models.catalog import Category
from src.models.notification import IntentKind, ItemDelta, NotificationIntent, PlannedItem
from src.core.rarity import Rarity


def _planned(key):
    delta = ItemDelta(key=key, previous_qty=0, current_qty=1, category=Category.SEEDS)
    return PlannedItem(delta=delta, rarity=Rarity.RARE)


def test_same_signature_suppressed_within_window():
    deduper = NotificationDeduper(window_seconds=300)

    assert deduper.should_send("dev", "sig", now=1000)
    deduper.record("dev", "sig", now=1000)

    assert not deduper.should_send("dev", "sig", now=1299)
    assert deduper.should_send("dev", "sig", now=1300)


def test_check_and_record():
    deduper = NotificationDeduper(window_seconds=60)
    assert deduper.check_and_record("dev", "sig", now=0)
    assert not deduper.check_and_record("dev", "sig", now=30)
    assert deduper.check_and_record("dev", "sig", now=61)
    assert deduper.last_sent("dev", "sig") == 61


def test_devices_are_independent():
    deduper = NotificationDeduper(window_seconds=300)
    deduper.record("dev-a", "sig", now=0)
    assert not deduper.should_send("dev-a", "sig", now=10)
    assert deduper.should_send("dev-b", "sig", now=10)


def test_old_entries_purged_on_write():
    deduper = NotificationDeduper(window_seconds=100)
    deduper.record("dev", "old", now=0)
    deduper.record("dev", "fresh", now=150)
    assert deduper.size() == 2

    deduper.record("dev", "newer", now=201)

    assert deduper.last_sent("dev", "old") is None
    assert deduper.last_sent("dev", "fresh") == 150
    assert deduper.size() == 2


def test_clear_returns_count():
    deduper = NotificationDeduper()
    deduper.record("dev-a", "x", now=0)
    deduper.record("dev-b", "y", now=0)
    assert deduper.clear() == 2
    assert deduper.size() == 0


def test_concurrent_check_and_record_admits_one():
    deduper = NotificationDeduper(window_seconds=300)
    results = []
    results_lock = threading.Lock()

    def worker():
        allowed = deduper.check_and_record("dev", "sig", now=500)
        with results_lock:
            results.append(allowed)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1


def test_signature_ignores_item_order():
    first = NotificationIntent(
        device_token="dev",
        kind=IntentKind.CATEGORY_ITEMS,
        category=Category.SEEDS,
        items=(_planned("Tomato"), _planned("Apple")),
    )
    second = NotificationIntent(
        device_token="dev",
        kind=IntentKind.CATEGORY_ITEMS,
        category=Category.SEEDS,
        items=(_planned("Apple"), _planned("Tomato")),
    )
    assert first.canonical_key == "category_items:seeds:Apple,Tomato"
    assert first.signature == second.signature


def test_signature_differs_by_category_prefix():
    seeds = NotificationIntent(
        device_token="dev", kind=IntentKind.CATEGORY_ITEMS, category=Category.SEEDS,
        items=(_planned("Tomato"),),
    )
    gear = NotificationIntent(
        device_token="dev", kind=IntentKind.CATEGORY_ITEMS, category=Category.GEAR,
        items=(_planned("Tomato"),),
    )
    assert seeds.signature != gear.signature
