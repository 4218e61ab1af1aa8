"""
稀有度解析
优先级: 覆盖表(按 item_id) > 上游声明 > 静态名称分类表 > 默认 Rare
"""
from enum import IntEnum
from typing import Dict, Mapping, Optional, Tuple


class Rarity(IntEnum):
    """稀有度等级，数值越大通知优先级越高"""
    COMMON = 1
    UNCOMMON = 2
    RARE = 3
    LEGENDARY = 4
    MYTHICAL = 5
    DIVINE = 6
    PRISMATIC = 7

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def emoji(self) -> str:
        return _RARITY_EMOJI[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Rarity"]:
        """解析稀有度名称（不区分大小写），无法识别返回 None"""
        if value is None:
            return None
        name = str(value).strip().lower()
        if not name:
            return None
        name = _RARITY_ALIASES.get(name, name)
        try:
            return cls[name.upper()]
        except KeyError:
            return None


_RARITY_EMOJI = {
    Rarity.COMMON: "🌱",
    Rarity.UNCOMMON: "🌿",
    Rarity.RARE: "🌸",
    Rarity.LEGENDARY: "🌟",
    Rarity.MYTHICAL: "🔥",
    Rarity.DIVINE: "✨",
    Rarity.PRISMATIC: "🌈",
}

# 上游与旧客户端使用过的拼写
_RARITY_ALIASES = {"devine": "divine"}

# 未分类商品的默认等级：新商品默认通知
DEFAULT_RARITY = Rarity.RARE

# 来源标记
SOURCE_OVERRIDE = "override"
SOURCE_UPSTREAM = "upstream"
SOURCE_STATIC = "static"
SOURCE_DEFAULT = "default"

# 静态名称分类表（Common 为常驻库存商品，不发送通知）
STATIC_RARITY_TABLE: Dict[str, Rarity] = {
    # 🌱 Common
    "Carrot": Rarity.COMMON,
    "Strawberry": Rarity.COMMON,
    "Watering Can": Rarity.COMMON,
    "Cleaning Spray": Rarity.COMMON,
    "Trowel": Rarity.COMMON,
    # 🌿 Uncommon
    "Blueberry": Rarity.UNCOMMON,
    "Orange Tulip": Rarity.UNCOMMON,
    "Recall Wrench": Rarity.UNCOMMON,
    # 🌸 Rare
    "Tomato": Rarity.RARE,
    "Daffodil": Rarity.RARE,
    "Basic Sprinkler": Rarity.RARE,
    # 🌟 Legendary
    "Watermelon": Rarity.LEGENDARY,
    "Pumpkin": Rarity.LEGENDARY,
    "Apple": Rarity.LEGENDARY,
    "Bamboo": Rarity.LEGENDARY,
    "Advanced Sprinkler": Rarity.LEGENDARY,
    # 🔥 Mythical
    "Coconut": Rarity.MYTHICAL,
    "Cactus": Rarity.MYTHICAL,
    "Dragon Fruit": Rarity.MYTHICAL,
    "Mango": Rarity.MYTHICAL,
    "Godly Sprinkler": Rarity.MYTHICAL,
    "Magnifying Glass": Rarity.MYTHICAL,
    "Tanning Mirror": Rarity.MYTHICAL,
    # ✨ Divine
    "Grape": Rarity.DIVINE,
    "Mushroom": Rarity.DIVINE,
    "Pepper": Rarity.DIVINE,
    "Cacao": Rarity.DIVINE,
    "Master Sprinkler": Rarity.DIVINE,
    "Favorite Tool": Rarity.DIVINE,
    "Harvest Tool": Rarity.DIVINE,
    "Friendship Pot": Rarity.DIVINE,
    # 🌈 Prismatic
    "Beanstalk": Rarity.PRISMATIC,
    "Ember Lily": Rarity.PRISMATIC,
    "Sugar Apple": Rarity.PRISMATIC,
    "Burning Bud": Rarity.PRISMATIC,
}


class RarityResolver:
    """分层稀有度解析器

    覆盖表在进程启动时加载一次，之后只读。解析本身无副作用，
    未分类商品的日志由调用方负责。
    """

    def __init__(
        self,
        overrides: Optional[Mapping[str, Rarity]] = None,
        static_table: Optional[Mapping[str, Rarity]] = None,
        default: Rarity = DEFAULT_RARITY,
    ):
        self._overrides: Dict[str, Rarity] = dict(overrides or {})
        self._static: Dict[str, Rarity] = dict(
            STATIC_RARITY_TABLE if static_table is None else static_table
        )
        self.default = default

    @classmethod
    def from_config(cls, overrides: Mapping[str, str]) -> "RarityResolver":
        """从配置的 {item_id: 稀有度名} 构建，无法识别的等级名被忽略"""
        parsed: Dict[str, Rarity] = {}
        for item_id, tier_name in overrides.items():
            tier = Rarity.parse(tier_name)
            if tier is not None and str(item_id).strip():
                parsed[str(item_id).strip()] = tier
        return cls(overrides=parsed)

    def explain(
        self,
        item_key: str,
        item_id: Optional[str] = None,
        upstream_rarity: Optional[str] = None,
    ) -> Tuple[Rarity, str]:
        """
        解析稀有度并返回来源

        Returns:
            (稀有度, 来源标记)
        """
        if item_id and item_id in self._overrides:
            return self._overrides[item_id], SOURCE_OVERRIDE

        upstream = Rarity.parse(upstream_rarity)
        if upstream is not None:
            return upstream, SOURCE_UPSTREAM

        static = self._static.get(item_key)
        if static is not None:
            return static, SOURCE_STATIC

        return self.default, SOURCE_DEFAULT

    def resolve(
        self,
        item_key: str,
        item_id: Optional[str] = None,
        upstream_rarity: Optional[str] = None,
    ) -> Rarity:
        return self.explain(item_key, item_id, upstream_rarity)[0]
