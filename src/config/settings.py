"""
配置管理模块
从 TOML 加载配置，提供默认值
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11
    import tomli as tomllib

from src.core.change_detector import EVENT_TOLERANCE_SECONDS

logger = logging.getLogger(__name__)

_CONFIG_FILE_NAME = "config.toml"

_DEFAULT_API_BASE = "https://api.joshlei.com/v2/growagarden"

_ALWAYS_SHOWN_CATEGORIES = ("seeds", "gear", "eggs", "cosmetic")


@dataclass
class Settings:
    """应用配置"""

    # 轮询配置
    POLL_INTERVAL: int = 30  # 库存/天气轮询间隔（秒）
    EVENT_POLL_INTERVAL: int = 3600  # 活动信息刷新间隔（秒）
    DISPATCH_WORKERS: int = 8  # 并行发送的设备线程数

    # 日志配置
    VERBOSE: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "detailed"  # detailed / json

    # 上游游戏数据接口
    STOCK_API_URL: str = f"{_DEFAULT_API_BASE}/stock"
    WEATHER_API_URL: str = f"{_DEFAULT_API_BASE}/weather"
    ITEM_INFO_API_URL: str = f"{_DEFAULT_API_BASE}/info"
    EVENT_API_URL: str = ""  # 留空则不拉取活动
    UPSTREAM_API_KEY: str = ""
    UPSTREAM_USER_AGENT: str = "GrowAGarden-StockBot/1.0"
    UPSTREAM_TIMEOUT: int = 10
    ITEM_INFO_CACHE_TTL: int = 3600
    # 常驻展示商品 {分类: [item_id]}，缺货时以数量 0 加入快照
    ALWAYS_SHOWN_ITEMS: Dict[str, List[str]] = field(default_factory=dict)

    # APNs 推送配置
    APNS_KEY_ID: str = ""
    APNS_TEAM_ID: str = ""
    APNS_BUNDLE_ID: str = ""
    APNS_KEY_PATH: str = ""  # .p8 文件路径
    APNS_KEY_CONTENT: str = ""  # 或直接填写 .p8 内容
    APNS_PRODUCTION: bool = False
    APNS_TIMEOUT: int = 10

    # 通知策略
    NOTIFY_DEDUPE_WINDOW: int = 300  # 去重窗口（秒）
    PREMIUM_RARITY: str = "Prismatic"  # 单独通知的稀有度
    MAX_LISTED_ITEMS: int = 6  # 通知正文最多列出的商品数
    EVENT_MINUTE_OFFSET: int = 0  # 活动触发分钟修正

    # 稀有度覆盖表 {item_id: 稀有度名}
    RARITY_OVERRIDES: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """初始化后处理，规范化取值"""
        # 轮询间隔不超过活动提醒容差，保证每个触发分钟都被轮询到
        if self.POLL_INTERVAL > EVENT_TOLERANCE_SECONDS:
            logger.warning(
                "poll_interval=%d 超过活动提醒容差，按 %d 秒轮询",
                self.POLL_INTERVAL,
                EVENT_TOLERANCE_SECONDS,
            )
        self.POLL_INTERVAL = min(max(1, self.POLL_INTERVAL), EVENT_TOLERANCE_SECONDS)
        self.EVENT_POLL_INTERVAL = max(60, self.EVENT_POLL_INTERVAL)
        self.DISPATCH_WORKERS = max(1, self.DISPATCH_WORKERS)
        # 同一触发分钟内的多次轮询依赖去重合并
        self.NOTIFY_DEDUPE_WINDOW = max(EVENT_TOLERANCE_SECONDS, self.NOTIFY_DEDUPE_WINDOW)
        self.MAX_LISTED_ITEMS = max(1, self.MAX_LISTED_ITEMS)
        self.EVENT_MINUTE_OFFSET = self.EVENT_MINUTE_OFFSET % 60

    @property
    def apns_configured(self) -> bool:
        """APNs 是否已配置"""
        has_key = bool(self.APNS_KEY_CONTENT or self.APNS_KEY_PATH)
        return bool(has_key and self.APNS_KEY_ID and self.APNS_TEAM_ID and self.APNS_BUNDLE_ID)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Settings":
        """从 TOML 配置文件加载配置"""
        data = _load_toml_config(path or _get_config_path())
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """从已解析的配置字典构建"""
        upstream = _get_section(data, "upstream")
        apns = _get_section(data, "apns")
        notify = _get_section(data, "notify")
        always_shown = _get_section(upstream, "always_shown")

        return cls(
            POLL_INTERVAL=_get_int(data, "poll_interval", 30),
            EVENT_POLL_INTERVAL=_get_int(data, "event_poll_interval", 3600),
            DISPATCH_WORKERS=_get_int(data, "dispatch_workers", 8),
            VERBOSE=_get_bool(data, "verbose", False),
            LOG_LEVEL=_get_str(data, "log_level", "INFO"),
            LOG_FORMAT=_get_str(data, "log_format", "detailed"),
            STOCK_API_URL=_get_str(upstream, "stock_url", f"{_DEFAULT_API_BASE}/stock"),
            WEATHER_API_URL=_get_str(upstream, "weather_url", f"{_DEFAULT_API_BASE}/weather"),
            ITEM_INFO_API_URL=_get_str(upstream, "info_url", f"{_DEFAULT_API_BASE}/info"),
            EVENT_API_URL=_get_str(upstream, "event_url", ""),
            UPSTREAM_API_KEY=_get_str(upstream, "api_key", ""),
            UPSTREAM_USER_AGENT=_get_str(upstream, "user_agent", "GrowAGarden-StockBot/1.0"),
            UPSTREAM_TIMEOUT=_get_int(upstream, "timeout", 10),
            ITEM_INFO_CACHE_TTL=_get_int(upstream, "item_info_cache_ttl", 3600),
            ALWAYS_SHOWN_ITEMS={
                category: _get_list(always_shown.get(category), [])
                for category in _ALWAYS_SHOWN_CATEGORIES
                if always_shown.get(category)
            },
            APNS_KEY_ID=_get_str(apns, "key_id", ""),
            APNS_TEAM_ID=_get_str(apns, "team_id", ""),
            APNS_BUNDLE_ID=_get_str(apns, "bundle_id", ""),
            APNS_KEY_PATH=_get_str(apns, "key_path", ""),
            APNS_KEY_CONTENT=_get_str(apns, "key_content", ""),
            APNS_PRODUCTION=_get_bool(apns, "production", False),
            APNS_TIMEOUT=_get_int(apns, "timeout", 10),
            NOTIFY_DEDUPE_WINDOW=_get_int(notify, "dedupe_window", 300),
            PREMIUM_RARITY=_get_str(notify, "premium_rarity", "Prismatic"),
            MAX_LISTED_ITEMS=_get_int(notify, "max_listed_items", 6),
            EVENT_MINUTE_OFFSET=_get_int(notify, "event_minute_offset", 0),
            RARITY_OVERRIDES={
                str(k).strip(): str(v).strip()
                for k, v in _get_section(data, "rarity_overrides").items()
                if str(k).strip()
            },
        )


def _get_config_path() -> Path:
    """获取配置文件路径"""
    return Path(__file__).resolve().parents[2] / _CONFIG_FILE_NAME


def _load_toml_config(path: Path) -> Dict[str, Any]:
    """加载 TOML 配置文件"""
    if not path.exists():
        logger.warning("未找到配置文件: %s，使用默认配置", path)
        return {}

    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.error("配置文件读取失败: %s", exc)
        return {}


def _get_section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    """读取配置分组"""
    value = data.get(key, {})
    return value if isinstance(value, dict) else {}


def _get_str(data: Dict[str, Any], key: str, default: str) -> str:
    """读取字符串配置"""
    value = data.get(key, default)
    return str(value) if value is not None else default


def _get_int(data: Dict[str, Any], key: str, default: int) -> int:
    """读取整数配置"""
    value = data.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _get_bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    """读取布尔配置"""
    value = data.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return default


def _get_list(value: Any, default: List[str]) -> List[str]:
    """读取字符串列表配置，支持逗号分隔字符串"""
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str) and value.strip():
        return [part.strip() for part in value.split(",") if part.strip()]
    return default


# 全局配置实例
settings = Settings.load()


def get_settings() -> Settings:
    """获取配置单例"""
    return settings
