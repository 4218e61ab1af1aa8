"""
游戏状态快照数据模型
商店库存、天气、定时活动
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Optional


class Category(Enum):
    """商店分类"""
    SEEDS = "seeds"
    GEAR = "gear"
    EGGS = "eggs"
    COSMETIC = "cosmetic"

    @property
    def label(self) -> str:
        """标题用名称，如 Seeds"""
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: str) -> Optional["Category"]:
        """宽松解析分类名，未知返回 None"""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class CatalogItem:
    """单个商品的库存信息"""
    key: str                               # 商品键（展示名）
    quantity: int                          # 库存数量
    category: Category                     # 所属商店
    display_name: str = ""                 # 展示名
    item_id: Optional[str] = None          # 上游商品 ID
    rarity: Optional[str] = None           # 上游声明的稀有度
    icon: Optional[str] = None             # 图标 URL

    def __post_init__(self):
        if self.quantity < 0:
            object.__setattr__(self, "quantity", 0)
        if not self.display_name:
            object.__setattr__(self, "display_name", self.key)

    @property
    def in_stock(self) -> bool:
        return self.quantity > 0


@dataclass(frozen=True)
class CatalogSnapshot:
    """商品库存快照，构建后不可变"""
    items: Mapping[str, CatalogItem] = field(default_factory=dict)
    fetched_at: Optional[datetime] = None

    def __post_init__(self):
        # 拷贝后只读包装，调用方之后修改原 dict 不影响快照
        object.__setattr__(self, "items", MappingProxyType(dict(self.items)))

    @classmethod
    def from_items(
        cls, items: Iterable[CatalogItem], fetched_at: Optional[datetime] = None
    ) -> "CatalogSnapshot":
        return cls(items={item.key: item for item in items}, fetched_at=fetched_at)

    def get(self, key: str) -> Optional[CatalogItem]:
        return self.items.get(key)

    def quantity(self, key: str) -> int:
        """获取商品数量，不存在视为 0"""
        item = self.items.get(key)
        return item.quantity if item else 0

    def count_by_category(self) -> Dict[Category, int]:
        counts: Dict[Category, int] = {}
        for item in self.items.values():
            counts[item.category] = counts.get(item.category, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, key: object) -> bool:
        return key in self.items

    def __iter__(self) -> Iterator[str]:
        return iter(self.items)


@dataclass(frozen=True)
class WeatherEntry:
    """单个天气事件"""
    weather_id: str
    name: str
    active: bool = False
    duration: int = 0                      # 持续时间（秒）
    icon: Optional[str] = None


@dataclass(frozen=True)
class WeatherSnapshot:
    """天气快照，构建后不可变"""
    entries: Mapping[str, WeatherEntry] = field(default_factory=dict)
    fetched_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    @classmethod
    def from_entries(
        cls, entries: Iterable[WeatherEntry], fetched_at: Optional[datetime] = None
    ) -> "WeatherSnapshot":
        return cls(
            entries={entry.weather_id: entry for entry in entries},
            fetched_at=fetched_at,
        )

    def get(self, weather_id: str) -> Optional[WeatherEntry]:
        return self.entries.get(weather_id)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, weather_id: object) -> bool:
        return weather_id in self.entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)


@dataclass(frozen=True)
class EventState:
    """当前定时活动（每小时刷新）"""
    name: str
    corrected_trigger_minute: int          # 修正后的触发分钟 0-59

    def __post_init__(self):
        if not 0 <= self.corrected_trigger_minute <= 59:
            raise ValueError(
                f"corrected_trigger_minute must be 0-59, got {self.corrected_trigger_minute}"
            )
