"""
通知内容组装
把已批准的通知意图转换为推送内容（标题、正文、角标、声音、分组标识）
不做任何筛选或去重
"""

from typing import List, Optional, Sequence

from src.core.exceptions import CompositionError
from src.models.catalog import Category
from src.models.device import DeviceRegistration, NotificationSettings
from src.models.notification import (
    IntentKind,
    NotificationIntent,
    NotificationPayload,
    PlannedItem,
    WeatherDelta,
)

DEFAULT_SOUND = "default"

_CATEGORY_EMOJI = {
    Category.SEEDS: "🌱",
    Category.GEAR: "⚙️",
    Category.EGGS: "🥚",
    Category.COSMETIC: "🎨",
}

# 按名称包含关系匹配，先种子后工具
_SEED_EMOJI = {
    "bamboo": "🎋",
    "tomato": "🍅",
    "mango": "🥭",
    "cactus": "🌵",
    "sugar apple": "🌺",
    "apple": "🍎",
    "grape": "🍇",
    "watermelon": "🍉",
    "strawberry": "🍓",
    "pumpkin": "🎃",
    "pepper": "🌶️",
    "mushroom": "🍄",
    "cacao": "🍫",
    "avocado": "🥑",
    "blueberry": "🫐",
    "carrot": "🥕",
    "coconut": "🥥",
    "beanstalk": "🌱",
    "daffodil": "🌼",
    "orange tulip": "🌷",
    "dragon fruit": "🐉",
    "burning bud": "🔥",
    "ember lily": "🔥",
}

_GEAR_EMOJI = {
    "watering can": "🪣",
    "trowel": "🔧",
    "magnifying glass": "🔍",
    "cleaning spray": "🧴",
    "recall wrench": "🔧",
    "sprinkler": "💦",
    "tanning mirror": "🪞",
    "favorite tool": "⭐",
    "harvest tool": "🛠️",
    "friendship pot": "🍯",
}


def item_emoji(name: str, category: Optional[Category] = None) -> str:
    """商品 emoji，未知商品按分类兜底"""
    lowered = name.lower()

    for table in (_SEED_EMOJI, _GEAR_EMOJI):
        for keyword, emoji in table.items():
            if keyword in lowered:
                return emoji

    if "egg" in lowered:
        if "bee" in lowered:
            return "🥚🐝"
        if "bug" in lowered:
            return "🥚🐛"
        if "rare" in lowered or "legendary" in lowered:
            return "🥚✨"
        if "paradise" in lowered or "summer" in lowered:
            return "🥚🌟"
        return "🥚"

    if category is not None:
        return _CATEGORY_EMOJI[category]
    return "📦"


def format_item(item: PlannedItem) -> str:
    """格式化为 x5 Tomato 🍅"""
    name = item.delta.display_name or item.key
    return f"x{item.quantity} {name} {item_emoji(name, item.delta.category)}"


def format_item_list(items: Sequence[PlannedItem], max_items: int = 6) -> str:
    """多个商品以 • 连接，超出部分显示 & N more"""
    formatted = [format_item(item) for item in items]
    if len(formatted) <= max_items:
        return " • ".join(formatted)
    remaining = len(formatted) - max_items
    return " • ".join(formatted[:max_items]) + f" & {remaining} more"


def resolve_sound_name(name: Optional[str]) -> Optional[str]:
    """客户端声音名转为 APNs sound 字段"""
    if not name or name == DEFAULT_SOUND:
        return DEFAULT_SOUND
    if name.lower() == "none":
        return None
    return name if "." in name else f"{name}.mp3"


class NotificationComposer:
    """通知内容组装器"""

    def __init__(self, max_listed_items: int = 6):
        self.max_listed_items = max_listed_items

    def compose(
        self, intent: NotificationIntent, registration: Optional[DeviceRegistration] = None
    ) -> NotificationPayload:
        """
        组装推送内容

        Args:
            intent: 通知意图
            registration: 设备注册信息（用于声音偏好），缺省使用默认声音

        Raises:
            CompositionError: 意图内容不完整
        """
        if intent.kind == IntentKind.PREMIUM_ITEM:
            return self._compose_premium(intent, registration)
        if intent.kind == IntentKind.CATEGORY_ITEMS:
            return self._compose_category(intent, registration)
        if intent.kind in (IntentKind.WEATHER_ACTIVE, IntentKind.WEATHER_ENDED):
            return self._compose_weather(intent, registration)
        if intent.kind == IntentKind.EVENT:
            return self._compose_event(intent, registration)
        raise CompositionError(f"unsupported intent kind: {intent.kind}")

    def _compose_category(
        self, intent: NotificationIntent, registration: Optional[DeviceRegistration]
    ) -> NotificationPayload:
        if not intent.items or intent.category is None:
            raise CompositionError("category intent without items")

        category = intent.category
        verb = "is" if len(intent.items) == 1 else "are"
        item_list = format_item_list(intent.items, self.max_listed_items)

        return NotificationPayload(
            title=f"{_CATEGORY_EMOJI[category]} {category.label} Restocked!",
            body=f"{item_list} {verb} now in stock.",
            badge=len(intent.items),
            sound=self._item_sound(registration, category),
            thread_id=f"stock-{category.value}",
            category=f"STOCK_ALERT_{category.name}",
            data={
                "type": "category_stock_alert",
                "category": category.label,
                "items": _items_data(intent.items),
            },
        )

    def _compose_premium(
        self, intent: NotificationIntent, registration: Optional[DeviceRegistration]
    ) -> NotificationPayload:
        if len(intent.items) != 1:
            raise CompositionError(
                f"premium intent must carry exactly one item, got {len(intent.items)}"
            )

        item = intent.items[0]
        rarity = item.rarity
        return NotificationPayload(
            title=f"{rarity.emoji} Ultra-Rare Find!",
            body=f"{format_item(item)} is here, super limited!",
            badge=1,
            sound=self._item_sound(registration, item.delta.category),
            thread_id=f"premium-{rarity.label.lower()}",
            category=f"PREMIUM_ALERT_{rarity.name}",
            data={
                "type": "premium_stock_alert",
                "item_name": item.key,
                "quantity": item.quantity,
                "rarity": rarity.label,
                "category": item.delta.category.value,
            },
        )

    def _compose_weather(
        self, intent: NotificationIntent, registration: Optional[DeviceRegistration]
    ) -> NotificationPayload:
        if not intent.weather:
            raise CompositionError("weather intent without weather events")

        active = intent.kind == IntentKind.WEATHER_ACTIVE
        state = "active" if active else "ended"
        events: Sequence[WeatherDelta] = intent.weather

        if len(events) == 1:
            name = events[0].name
            title = f"🌦️ Weather {'Started' if active else 'Ended'}!"
            body = f"{name} is {'now active' if active else 'no longer active'} in your garden."
        else:
            names = ", ".join(w.name for w in events)
            title = f"🌦️ Weather {'Changes' if active else 'Updates'}!"
            body = f"{names} {'are now active' if active else 'have ended'} in your garden."

        sound: Optional[str] = DEFAULT_SOUND
        if registration is not None:
            settings = registration.notification_settings
            sound = resolve_sound_name(settings.selected_sound) if settings.sound_enabled else None

        return NotificationPayload(
            title=title,
            body=body,
            badge=len(events),
            sound=sound,
            thread_id=f"weather-{state}",
            category=f"WEATHER_{state.upper()}",
            data={
                "type": f"weather_{state}",
                "category": "weather",
                "weather_events": [
                    {"weather_id": w.weather_id, "weather_name": w.name, "duration": w.duration}
                    for w in events
                ],
            },
        )

    def _compose_event(
        self, intent: NotificationIntent, registration: Optional[DeviceRegistration]
    ) -> NotificationPayload:
        event = intent.event
        if event is None:
            raise CompositionError("event intent without event")

        minutes = event.minutes_before
        if minutes == 0:
            title = f"⏰ {event.name} Started!"
            body = f"{event.name} is starting now!"
        else:
            unit = "minute" if minutes == 1 else "minutes"
            title = f"⏰ {event.name} Soon!"
            body = f"{event.name} starts in {minutes} {unit}."

        sound: Optional[str] = DEFAULT_SOUND
        if registration is not None:
            if registration.notification_settings.sound_enabled:
                sound = resolve_sound_name(registration.event_settings.sound)
            else:
                sound = None

        return NotificationPayload(
            title=title,
            body=body,
            badge=1,
            sound=sound,
            thread_id="event",
            category="EVENT_REMINDER",
            data={"type": "event_reminder", "event_name": event.name, "minutes_before": minutes},
        )

    def _item_sound(
        self, registration: Optional[DeviceRegistration], category: Category
    ) -> Optional[str]:
        """分类声音 > 设备默认声音；关闭声音时返回 None"""
        if registration is None:
            return DEFAULT_SOUND
        settings: NotificationSettings = registration.notification_settings
        if not settings.sound_enabled:
            return None
        name = settings.per_category_sound.get(category.value) or settings.selected_sound
        return resolve_sound_name(name)


def compose_test_notification(
    registration: Optional[DeviceRegistration] = None, message: str = ""
) -> NotificationPayload:
    """测试通知"""
    sound: Optional[str] = DEFAULT_SOUND
    if registration is not None:
        settings = registration.notification_settings
        sound = resolve_sound_name(settings.selected_sound) if settings.sound_enabled else None

    return NotificationPayload(
        title="✅ Notification Test",
        body=message
        or "This is a test. You'll get real alerts like \"x15 Bamboo 🎋\" when items restock.",
        badge=1,
        sound=sound,
        thread_id="test-notifications",
        category="TEST_NOTIFICATION",
        data={"type": "test_notification"},
    )


def _items_data(items: Sequence[PlannedItem]) -> List[dict]:
    return [
        {
            "name": item.key,
            "quantity": item.quantity,
            "previous_quantity": item.delta.previous_qty,
            "rarity": item.rarity.label,
        }
        for item in items
    ]
