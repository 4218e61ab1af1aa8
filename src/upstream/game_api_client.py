"""
上游游戏数据客户端
拉取商店库存、天气、定时活动，转换为快照
"""

import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import requests

from src.config.settings import Settings, get_settings
from src.core.exceptions import UpstreamError
from src.models.catalog import (
    CatalogItem,
    CatalogSnapshot,
    Category,
    EventState,
    WeatherEntry,
    WeatherSnapshot,
)

logger = logging.getLogger(__name__)

# 上游响应字段 -> 分类
_STOCK_SECTIONS = (
    ("seed_stock", Category.SEEDS),
    ("gear_stock", Category.GEAR),
    ("egg_stock", Category.EGGS),
    ("cosmetic_stock", Category.COSMETIC),
)


class GameApiClient:
    """游戏数据 API 客户端"""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        """初始化客户端"""
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        # {item_id: (拉取时间, 商品信息)}
        self._item_info_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._cache_lock = threading.Lock()

    def _get_json(self, source: str, url: str) -> Any:
        """
        GET 请求并解析 JSON

        Raises:
            UpstreamError: 未配置 API key、网络错误、非 2xx、JSON 无效
        """
        if not self.settings.UPSTREAM_API_KEY:
            raise UpstreamError(source, "未配置上游 API key")

        try:
            response = self.session.get(
                url,
                headers={
                    "jstudio-key": self.settings.UPSTREAM_API_KEY,
                    "Accept": "application/json",
                    "User-Agent": self.settings.UPSTREAM_USER_AGENT,
                },
                timeout=self.settings.UPSTREAM_TIMEOUT,
            )
        except requests.RequestException as e:
            raise UpstreamError(source, f"请求失败: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(
                source, f"HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(source, f"响应不是有效 JSON: {e}") from e

    def fetch_catalog(self) -> CatalogSnapshot:
        """
        拉取商店库存

        Returns:
            库存快照（含数量为 0 的常驻展示商品）

        Raises:
            UpstreamError: 拉取或解析失败
        """
        data = self._get_json("stock", self.settings.STOCK_API_URL)
        if not isinstance(data, dict):
            raise UpstreamError("stock", "响应格式错误")

        items: Dict[str, CatalogItem] = {}
        for section, category in _STOCK_SECTIONS:
            entries = data.get(section)
            if not isinstance(entries, list):
                continue
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                item = self._parse_stock_entry(entry, category)
                if item is None:
                    continue

                existing = items.get(item.key)
                if existing is not None and category == Category.EGGS:
                    # 同名蛋合并数量
                    items[item.key] = CatalogItem(
                        key=existing.key,
                        quantity=existing.quantity + item.quantity,
                        category=existing.category,
                        display_name=existing.display_name,
                        item_id=existing.item_id or item.item_id,
                        rarity=item.rarity or existing.rarity,
                        icon=item.icon or existing.icon,
                    )
                else:
                    items[item.key] = item

        self._add_always_shown(items)

        snapshot = CatalogSnapshot(items=items, fetched_at=datetime.now())
        counts = snapshot.count_by_category()
        logger.info(
            "库存拉取完成: %d 个商品 (seeds=%d, gear=%d, eggs=%d, cosmetic=%d)",
            len(snapshot),
            counts.get(Category.SEEDS, 0),
            counts.get(Category.GEAR, 0),
            counts.get(Category.EGGS, 0),
            counts.get(Category.COSMETIC, 0),
        )
        return snapshot

    def _parse_stock_entry(self, entry: Dict[str, Any], category: Category) -> Optional[CatalogItem]:
        """解析单条库存记录"""
        name = str(entry.get("display_name") or "").strip()
        if not name:
            return None
        # 蛋商店中的位置占位条目
        if category == Category.EGGS and "location" in name.lower():
            return None

        try:
            quantity = int(entry.get("quantity") or 0)
        except (TypeError, ValueError):
            quantity = 0

        item_id = entry.get("item_id") or None
        info = self.fetch_item_info(item_id) if item_id else None

        return CatalogItem(
            key=name,
            quantity=quantity,
            category=category,
            display_name=name,
            item_id=item_id,
            rarity=(info or {}).get("rarity") or None,
            icon=entry.get("icon") or None,
        )

    def _add_always_shown(self, items: Dict[str, CatalogItem]) -> None:
        """加入缺货的常驻展示商品（数量 0，便于收藏）"""
        for category_name, item_ids in self.settings.ALWAYS_SHOWN_ITEMS.items():
            category = Category.parse(category_name)
            if category is None:
                continue
            for item_id in item_ids:
                info = self.fetch_item_info(item_id)
                if not info:
                    logger.warning("无法获取常驻商品信息: %s", item_id)
                    continue
                name = str(info.get("display_name") or "").strip()
                if not name or name in items:
                    continue
                items[name] = CatalogItem(
                    key=name,
                    quantity=0,
                    category=category,
                    display_name=name,
                    item_id=str(info.get("item_id") or item_id),
                    rarity=info.get("rarity") or None,
                    icon=info.get("icon") or None,
                )
                logger.debug("加入常驻商品: %s [%s]", name, category.value)

    def fetch_item_info(self, item_id: str) -> Optional[Dict[str, Any]]:
        """
        获取商品信息（带缓存）

        失败时返回 None，不影响库存拉取
        """
        now = time.time()
        with self._cache_lock:
            cached = self._item_info_cache.get(item_id)
        if cached and (now - cached[0]) < self.settings.ITEM_INFO_CACHE_TTL:
            return cached[1]

        try:
            data = self._get_json("info", f"{self.settings.ITEM_INFO_API_URL}/{item_id}")
        except UpstreamError as e:
            if e.status_code == 404:
                logger.debug("商品信息不存在: %s", item_id)
            else:
                logger.warning("商品信息获取失败 %s: %s", item_id, e.message)
            return None

        if not isinstance(data, dict):
            return None

        with self._cache_lock:
            self._item_info_cache[item_id] = (now, data)
        return data

    def clear_item_info_cache(self) -> int:
        """清空商品信息缓存，返回清理条数"""
        with self._cache_lock:
            count = len(self._item_info_cache)
            self._item_info_cache.clear()
            return count

    def item_info_cache_size(self) -> int:
        with self._cache_lock:
            return len(self._item_info_cache)

    def fetch_weather(self) -> WeatherSnapshot:
        """
        拉取天气

        Raises:
            UpstreamError: 拉取或解析失败
        """
        data = self._get_json("weather", self.settings.WEATHER_API_URL)
        entries = data.get("weather") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise UpstreamError("weather", "响应中没有 weather 列表")

        parsed: List[WeatherEntry] = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("weather_id"):
                continue
            try:
                duration = int(entry.get("duration") or 0)
            except (TypeError, ValueError):
                duration = 0
            parsed.append(
                WeatherEntry(
                    weather_id=str(entry["weather_id"]),
                    name=str(entry.get("weather_name") or entry["weather_id"]),
                    active=bool(entry.get("active")),
                    duration=duration,
                    icon=entry.get("icon") or None,
                )
            )

        logger.info("天气拉取完成: %d 个天气事件", len(parsed))
        return WeatherSnapshot.from_entries(parsed, fetched_at=datetime.now())

    def fetch_event(self) -> Optional[EventState]:
        """
        拉取当前定时活动

        Returns:
            活动信息；未配置 event_url 或上游无活动时返回 None

        Raises:
            UpstreamError: 拉取或解析失败
        """
        if not self.settings.EVENT_API_URL:
            return None

        data = self._get_json("event", self.settings.EVENT_API_URL)
        if not isinstance(data, dict) or not data.get("name"):
            return None

        try:
            minute = int(data.get("trigger_minute"))
        except (TypeError, ValueError) as e:
            raise UpstreamError("event", f"trigger_minute 无效: {data.get('trigger_minute')}") from e

        corrected = (minute + self.settings.EVENT_MINUTE_OFFSET) % 60
        return EventState(name=str(data["name"]), corrected_trigger_minute=corrected)
