"""
通知策略
根据设备收藏、分类开关、稀有度，将变化列表转换为 (设备, 通知意图)
本模块不做任何 I/O，也不做去重
"""

import logging
import threading
from typing import Dict, List, Optional, Sequence, Set

from src.config.logging_config import mask_token
from src.core.rarity import SOURCE_DEFAULT, Rarity, RarityResolver
from src.models.catalog import Category
from src.models.device import DeviceRegistration, DeviceRegistry, WeatherMode
from src.models.notification import (
    EventDelta,
    IntentKind,
    ItemDelta,
    NotificationIntent,
    PlannedItem,
    WeatherDelta,
)

logger = logging.getLogger(__name__)


class NotificationPolicy:
    """通知策略引擎"""

    def __init__(self, resolver: RarityResolver, premium_rarity: Rarity = Rarity.PRISMATIC):
        self.resolver = resolver
        self.premium_rarity = premium_rarity
        # 已提示过的未分类商品，避免每轮刷屏
        self._warned_unknown: Set[str] = set()
        self._warned_lock = threading.Lock()

    def plan(
        self,
        item_deltas: Sequence[ItemDelta],
        weather_deltas: Sequence[WeatherDelta],
        event_delta: Optional[EventDelta],
        registry: DeviceRegistry,
    ) -> List[NotificationIntent]:
        """生成本轮全部通知意图（商品 -> 天气 -> 活动）"""
        devices = registry.snapshot()
        intents = self.plan_items(item_deltas, devices)
        intents.extend(self.plan_weather(weather_deltas, devices))
        intents.extend(self.plan_event(event_delta, devices))
        return intents

    def eligible_items(self, deltas: Sequence[ItemDelta]) -> List[PlannedItem]:
        """
        筛选可通知的商品：稀有度严格高于 Common

        Common 为常驻库存商品，永久不通知。
        """
        eligible: List[PlannedItem] = []
        for delta in deltas:
            rarity, source = self.resolver.explain(
                delta.key, delta.item_id, delta.upstream_rarity
            )
            if source == SOURCE_DEFAULT:
                self._warn_unknown(delta.key, rarity)

            if rarity <= Rarity.COMMON:
                logger.debug("稀有度过滤: %s 为 %s，不发送通知", delta.key, rarity.label)
                continue
            eligible.append(PlannedItem(delta=delta, rarity=rarity))
        return eligible

    def plan_items(
        self, deltas: Sequence[ItemDelta], devices: Sequence[DeviceRegistration]
    ) -> List[NotificationIntent]:
        """
        商品通知：收藏 ∩ 可通知商品

        - 稀有度等于 premium_rarity 的商品，每个单独一条
        - 其余商品按分类合并，每个分类一条
        """
        eligible = self.eligible_items(deltas)
        if not eligible:
            return []

        intents: List[NotificationIntent] = []
        for device in devices:
            settings = device.notification_settings
            if not settings.enabled:
                logger.debug("通知已关闭: %s", mask_token(device.device_token))
                continue

            matched = [
                planned
                for planned in eligible
                if planned.key in device.favorite_item_keys
                and settings.allows(planned.delta.category)
            ]
            if not matched:
                continue

            grouped: Dict[Category, List[PlannedItem]] = {}
            for planned in matched:
                if planned.rarity == self.premium_rarity:
                    intents.append(
                        NotificationIntent(
                            device_token=device.device_token,
                            kind=IntentKind.PREMIUM_ITEM,
                            category=planned.delta.category,
                            items=(planned,),
                        )
                    )
                else:
                    grouped.setdefault(planned.delta.category, []).append(planned)

            for category in Category:
                if category in grouped:
                    intents.append(
                        NotificationIntent(
                            device_token=device.device_token,
                            kind=IntentKind.CATEGORY_ITEMS,
                            category=category,
                            items=tuple(grouped[category]),
                        )
                    )

        return intents

    def plan_weather(
        self, deltas: Sequence[WeatherDelta], devices: Sequence[DeviceRegistration]
    ) -> List[NotificationIntent]:
        """
        天气通知

        - mode=all: 收到全部变化
        - mode=favorites_only: 只保留收藏的天气；没有收藏则不通知
        开始与结束分别合并为一条，开始在前。
        """
        if not deltas:
            return []

        intents: List[NotificationIntent] = []
        for device in devices:
            if not device.notification_settings.enabled or not device.weather_settings.enabled:
                continue

            selected = list(deltas)
            if device.weather_settings.mode == WeatherMode.FAVORITES_ONLY:
                selected = [d for d in deltas if d.weather_id in device.favorite_weather_ids]

            started = tuple(d for d in selected if d.is_active)
            ended = tuple(d for d in selected if not d.is_active)
            if started:
                intents.append(
                    NotificationIntent(
                        device_token=device.device_token,
                        kind=IntentKind.WEATHER_ACTIVE,
                        weather=started,
                    )
                )
            if ended:
                intents.append(
                    NotificationIntent(
                        device_token=device.device_token,
                        kind=IntentKind.WEATHER_ENDED,
                        weather=ended,
                    )
                )

        return intents

    def plan_event(
        self, delta: Optional[EventDelta], devices: Sequence[DeviceRegistration]
    ) -> List[NotificationIntent]:
        """活动提醒：仅发给提前量恰好等于当前距离的设备，每次活动每设备只触发一次"""
        if delta is None:
            return []

        return [
            NotificationIntent(
                device_token=device.device_token,
                kind=IntentKind.EVENT,
                event=delta,
            )
            for device in devices
            if device.notification_settings.enabled
            and device.event_settings.enabled
            and device.event_settings.lead_minutes == delta.minutes_before
        ]

    def _warn_unknown(self, item_key: str, rarity: Rarity) -> None:
        with self._warned_lock:
            if item_key in self._warned_unknown:
                return
            self._warned_unknown.add(item_key)
        logger.warning(
            "未分类商品稀有度: '%s'，默认按 %s 处理（会发送通知），请补充静态分类表",
            item_key,
            rarity.label,
        )
