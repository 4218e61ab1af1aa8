"""
通知相关数据模型
变化量(delta)、通知意图(intent)、推送内容(payload)、发送结果
"""
import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from src.core.rarity import Rarity
from src.models.catalog import Category


class DetectionMode(Enum):
    """库存检测模式"""
    RESTOCK = "restock"            # 轮询周期内的补货检测
    AVAILABILITY = "availability"  # 手动触发的可用性检查


class ItemChangeKind(Enum):
    APPEARED = "appeared"      # 0 -> 正数
    CHANGED = "changed"        # 数量变化
    UNCHANGED = "unchanged"    # 数量相同（售罄后以相同数量补货）


@dataclass(frozen=True)
class ItemDelta:
    """单个商品的库存变化"""
    key: str
    previous_qty: int
    current_qty: int
    category: Category
    display_name: str = ""
    item_id: Optional[str] = None
    upstream_rarity: Optional[str] = None

    @property
    def kind(self) -> ItemChangeKind:
        if self.previous_qty <= 0:
            return ItemChangeKind.APPEARED
        if self.previous_qty != self.current_qty:
            return ItemChangeKind.CHANGED
        return ItemChangeKind.UNCHANGED


@dataclass(frozen=True)
class WeatherDelta:
    """单个天气的状态切换"""
    weather_id: str
    name: str
    is_active: bool
    was_active: bool
    duration: int = 0
    icon: Optional[str] = None


@dataclass(frozen=True)
class EventDelta:
    """定时活动提醒（距离触发还有 minutes_before 分钟）"""
    name: str
    minutes_before: int


@dataclass(frozen=True)
class PlannedItem:
    """已通过策略筛选的商品"""
    delta: ItemDelta
    rarity: Rarity

    @property
    def key(self) -> str:
        return self.delta.key

    @property
    def quantity(self) -> int:
        return self.delta.current_qty


class IntentKind(Enum):
    PREMIUM_ITEM = "premium_item"
    CATEGORY_ITEMS = "category_items"
    WEATHER_ACTIVE = "weather_active"
    WEATHER_ENDED = "weather_ended"
    EVENT = "event"


@dataclass(frozen=True)
class NotificationIntent:
    """已批准、尚未组装的通知决定：一个设备、一次变化"""
    device_token: str
    kind: IntentKind
    category: Optional[Category] = None
    items: Tuple[PlannedItem, ...] = ()
    weather: Tuple[WeatherDelta, ...] = ()
    event: Optional[EventDelta] = None

    @property
    def canonical_key(self) -> str:
        """规范化内容键：分类前缀 + 排序后的实体键，与上游顺序无关"""
        if self.kind in (IntentKind.PREMIUM_ITEM, IntentKind.CATEGORY_ITEMS):
            category = self.category.value if self.category else "unknown"
            keys = ",".join(sorted(item.key for item in self.items))
            return f"{self.kind.value}:{category}:{keys}"
        if self.kind in (IntentKind.WEATHER_ACTIVE, IntentKind.WEATHER_ENDED):
            ids = ",".join(sorted(w.weather_id for w in self.weather))
            return f"{self.kind.value}:{ids}"
        if self.event is not None:
            return f"{self.kind.value}:{self.event.name}:{self.event.minutes_before}"
        return self.kind.value

    @property
    def signature(self) -> str:
        """去重签名（规范化内容键的稳定哈希）"""
        return hashlib.sha1(self.canonical_key.encode("utf-8")).hexdigest()

    @property
    def size(self) -> int:
        """意图包含的实体数量"""
        if self.items:
            return len(self.items)
        if self.weather:
            return len(self.weather)
        return 1 if self.event else 0


@dataclass
class NotificationPayload:
    """网关可直接发送的推送内容"""
    title: str
    body: str
    badge: int
    sound: Optional[str]
    thread_id: str
    category: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_apns(self) -> Dict[str, Any]:
        """转换为 APNs JSON 结构"""
        aps: Dict[str, Any] = {
            "alert": {"title": self.title, "body": self.body},
            "badge": self.badge,
            "thread-id": self.thread_id,
            "category": self.category,
        }
        if self.sound:
            aps["sound"] = self.sound
        body: Dict[str, Any] = {"aps": aps}
        body.update(self.data)
        return body


@dataclass(frozen=True)
class DeliveryResult:
    """单设备发送结果"""
    sent_count: int = 0
    failed_count: int = 0
    failure_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.sent_count > 0 and self.failed_count == 0


@dataclass
class DispatchSummary:
    """一次分发的统计"""
    sent: int = 0
    failed: int = 0
    suppressed: int = 0
    composition_errors: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)  # (掩码 token, 原因)

    def merge(self, other: "DispatchSummary") -> None:
        self.sent += other.sent
        self.failed += other.failed
        self.suppressed += other.suppressed
        self.composition_errors += other.composition_errors
        self.failures.extend(other.failures)
