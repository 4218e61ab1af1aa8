"""
变化检测器
对比上一轮与当前快照，输出商品/天气变化；活动提醒按整点分钟判定
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from src.models.catalog import CatalogSnapshot, EventState, WeatherSnapshot
from src.models.device import EVENT_LEAD_MINUTES
from src.models.notification import DetectionMode, EventDelta, ItemDelta, WeatherDelta

logger = logging.getLogger(__name__)

# 分钟内的触发容差（秒），避免轮询抖动导致同一分钟内重复触发
EVENT_TOLERANCE_SECONDS = 30


@dataclass(frozen=True)
class ChangeSummary:
    """全量库存变化统计（仅用于日志）"""
    changed: int = 0        # 数量有任何变化的商品数
    restocked: int = 0      # 0 -> 正数 的商品数
    sold_out: int = 0       # 正数 -> 0 的商品数


def detect_item_changes(
    previous: CatalogSnapshot,
    current: CatalogSnapshot,
    tracked_keys: Iterable[str],
    mode: DetectionMode = DetectionMode.RESTOCK,
) -> List[ItemDelta]:
    """
    检测被关注商品的库存变化

    两种模式判定条件相同（current_qty > 0），不与 previous_qty 比较：
    商品可能在一个轮询间隔内售罄后以相同数量补货，此时仍需通知。

    Args:
        previous: 上一轮快照
        current: 当前快照
        tracked_keys: 需要检测的商品键（所有设备收藏的并集）
        mode: 检测模式（仅影响日志）

    Returns:
        按商品键排序的变化列表
    """
    deltas: List[ItemDelta] = []

    for key in sorted(set(tracked_keys)):
        item = current.get(key)
        previous_qty = previous.quantity(key)

        if item is None or not item.in_stock:
            if previous_qty > 0:
                logger.debug("%s: %s 已售罄 (%d -> 0)", mode.value, key, previous_qty)
            continue

        delta = ItemDelta(
            key=key,
            previous_qty=previous_qty,
            current_qty=item.quantity,
            category=item.category,
            display_name=item.display_name,
            item_id=item.item_id,
            upstream_rarity=item.rarity,
        )
        deltas.append(delta)
        logger.debug(
            "%s: %s 有货 [%s] (%d -> %d)",
            mode.value,
            key,
            delta.kind.value,
            previous_qty,
            delta.current_qty,
        )

    return deltas


def summarize_item_changes(
    previous: CatalogSnapshot, current: CatalogSnapshot
) -> ChangeSummary:
    """统计全量商品的数量变化"""
    changed = restocked = sold_out = 0

    for key in set(previous) | set(current):
        before = previous.quantity(key)
        after = current.quantity(key)
        if before == after:
            continue
        changed += 1
        if before == 0:
            restocked += 1
        elif after == 0:
            sold_out += 1

    return ChangeSummary(changed=changed, restocked=restocked, sold_out=sold_out)


def detect_weather_changes(
    previous: WeatherSnapshot, current: WeatherSnapshot
) -> List[WeatherDelta]:
    """
    检测天气状态切换

    - active 标志在两次快照间不同的天气
    - 上一轮 active 但当前快照中已不存在的天气，视为结束

    输出顺序：开始的天气在前，结束的天气在后。
    """
    started: List[WeatherDelta] = []
    ended: List[WeatherDelta] = []

    for weather_id, entry in current.entries.items():
        before = previous.get(weather_id)
        was_active = before.active if before else False
        if was_active == entry.active:
            continue

        delta = WeatherDelta(
            weather_id=weather_id,
            name=entry.name,
            is_active=entry.active,
            was_active=was_active,
            duration=entry.duration,
            icon=entry.icon,
        )
        (started if entry.active else ended).append(delta)

    # 隐式结束 = 上一轮活跃 - 当前存在
    for weather_id, entry in previous.entries.items():
        if weather_id in current or not entry.active:
            continue
        ended.append(
            WeatherDelta(
                weather_id=weather_id,
                name=entry.name,
                is_active=False,
                was_active=True,
                duration=0,
                icon=entry.icon,
            )
        )

    for delta in started:
        logger.info("天气开始: %s", delta.name)
    for delta in ended:
        logger.info("天气结束: %s", delta.name)

    return started + ended


def detect_event_trigger(
    event: Optional[EventState],
    now: datetime,
    lead_minutes: Iterable[int] = EVENT_LEAD_MINUTES,
    tolerance_seconds: int = EVENT_TOLERANCE_SECONDS,
) -> Optional[EventDelta]:
    """
    判断当前时刻是否命中活动触发分钟或其提前量

    仅在命中分钟的前 tolerance_seconds 秒内返回结果。

    Returns:
        命中时返回距离触发的分钟数，否则 None
    """
    if event is None or now.second >= tolerance_seconds:
        return None

    for lead in sorted(set(lead_minutes)):
        if (event.corrected_trigger_minute - lead) % 60 == now.minute:
            return EventDelta(name=event.name, minutes_before=lead)

    return None


def event_changed(previous: Optional[EventState], current: Optional[EventState]) -> bool:
    """活动是否切换（名称或触发分钟不同）"""
    return previous != current
