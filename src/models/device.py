"""
设备注册数据模型
注册为整体替换（幂等 upsert），偏好默认值在注册时一次性确定
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from src.config.logging_config import mask_token
from src.models.catalog import Category

# 活动提前提醒可选分钟数
EVENT_LEAD_MINUTES = (0, 1, 2, 5, 10, 15)
DEFAULT_EVENT_LEAD_MINUTES = 5


class WeatherMode(Enum):
    ALL = "all"
    FAVORITES_ONLY = "favorites_only"

    @classmethod
    def parse(cls, value: Any) -> "WeatherMode":
        name = str(value or "").strip().lower().replace("-", "_")
        if name in ("favoritesonly", "favorites_only", "favorites"):
            return cls.FAVORITES_ONLY
        return cls.ALL


@dataclass(frozen=True)
class NotificationSettings:
    """商品通知设置"""
    enabled: bool = True
    sound_enabled: bool = True
    selected_sound: str = "default"
    per_category_sound: Mapping[str, str] = field(default_factory=dict)
    category_enabled: Mapping[str, bool] = field(default_factory=dict)

    def allows(self, category: Category) -> bool:
        """该分类是否开启通知（未配置视为开启）"""
        return self.enabled and self.category_enabled.get(category.value, True)

    @classmethod
    def from_payload(cls, data: Optional[Mapping[str, Any]]) -> "NotificationSettings":
        data = _as_mapping(data)
        sounds = data.get("per_category_sound") or data.get("category_sounds") or {}
        enabled_map = data.get("category_enabled") or {}
        return cls(
            enabled=_as_bool(data.get("enabled"), True),
            sound_enabled=_as_bool(data.get("sound", data.get("sound_enabled")), True),
            selected_sound=str(data.get("selected_sound") or "default"),
            per_category_sound={
                str(k).lower(): str(v)
                for k, v in sounds.items()
                if Category.parse(k) is not None and v
            } if isinstance(sounds, Mapping) else {},
            category_enabled={
                str(k).lower(): _as_bool(v, True)
                for k, v in enabled_map.items()
                if Category.parse(k) is not None
            } if isinstance(enabled_map, Mapping) else {},
        )


@dataclass(frozen=True)
class WeatherSettings:
    """天气通知设置"""
    enabled: bool = True
    mode: WeatherMode = WeatherMode.ALL

    @classmethod
    def from_payload(cls, data: Optional[Mapping[str, Any]]) -> "WeatherSettings":
        data = _as_mapping(data)
        return cls(
            enabled=_as_bool(data.get("enabled"), True),
            mode=WeatherMode.parse(data.get("mode")),
        )


@dataclass(frozen=True)
class EventSettings:
    """定时活动提醒设置"""
    enabled: bool = True
    lead_minutes: int = DEFAULT_EVENT_LEAD_MINUTES
    sound: str = "default"

    @classmethod
    def from_payload(cls, data: Optional[Mapping[str, Any]]) -> "EventSettings":
        data = _as_mapping(data)
        try:
            lead = int(data.get("lead_minutes", DEFAULT_EVENT_LEAD_MINUTES))
        except (TypeError, ValueError):
            lead = DEFAULT_EVENT_LEAD_MINUTES
        if lead not in EVENT_LEAD_MINUTES:
            lead = DEFAULT_EVENT_LEAD_MINUTES
        return cls(
            enabled=_as_bool(data.get("enabled"), True),
            lead_minutes=lead,
            sound=str(data.get("sound") or "default"),
        )


@dataclass(frozen=True)
class DeviceRegistration:
    """设备注册信息"""
    device_token: str
    favorite_item_keys: FrozenSet[str] = frozenset()
    favorite_weather_ids: FrozenSet[str] = frozenset()
    notification_settings: NotificationSettings = field(default_factory=NotificationSettings)
    weather_settings: WeatherSettings = field(default_factory=WeatherSettings)
    event_settings: EventSettings = field(default_factory=EventSettings)
    platform: str = "ios"
    app_version: str = "1.0"
    registered_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DeviceRegistration":
        """
        从客户端注册 JSON 构建

        Raises:
            ValueError: 缺少 device_token 或注册数据不是 JSON 对象
        """
        if not isinstance(payload, Mapping):
            raise ValueError("registration payload must be an object")
        token = str(payload.get("device_token") or "").strip()
        if not token:
            raise ValueError("device_token is required")

        return cls(
            device_token=token,
            favorite_item_keys=_as_key_set(payload.get("favorite_items")),
            favorite_weather_ids=_as_key_set(payload.get("favorite_weather")),
            notification_settings=NotificationSettings.from_payload(
                payload.get("notification_settings")
            ),
            weather_settings=WeatherSettings.from_payload(payload.get("weather_settings")),
            event_settings=EventSettings.from_payload(payload.get("event_settings")),
            platform=str(payload.get("platform") or "ios"),
            app_version=str(payload.get("app_version") or "1.0"),
        )


class DeviceRegistry:
    """设备注册表

    HTTP 层写入，引擎只读。设备不会单独删除，随进程重启失效。
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._devices: Dict[str, DeviceRegistration] = {}

    def get(self, device_token: str) -> Optional[DeviceRegistration]:
        with self._lock:
            return self._devices.get(device_token)

    def upsert(self, device_token: str, registration: DeviceRegistration) -> None:
        """整体替换注册信息（不合并）"""
        with self._lock:
            self._devices[device_token] = registration

    def register(self, payload: Mapping[str, Any]) -> DeviceRegistration:
        """解析注册 JSON 并写入"""
        registration = DeviceRegistration.from_payload(payload)
        self.upsert(registration.device_token, registration)
        return registration

    def snapshot(self) -> List[DeviceRegistration]:
        """当前所有设备的列表副本"""
        with self._lock:
            return list(self._devices.values())

    def favorite_item_keys(self) -> FrozenSet[str]:
        """所有设备收藏商品的并集"""
        keys = set()
        for registration in self.snapshot():
            keys.update(registration.favorite_item_keys)
        return frozenset(keys)

    def debug_summary(self) -> List[Dict[str, Any]]:
        """调试信息（token 已掩码）"""
        return [
            {
                "device_token_preview": mask_token(reg.device_token),
                "favorite_items": sorted(reg.favorite_item_keys),
                "favorites_count": len(reg.favorite_item_keys),
                "notification_enabled": reg.notification_settings.enabled,
                "weather_mode": reg.weather_settings.mode.value,
                "event_lead_minutes": reg.event_settings.lead_minutes,
                "registered_at": reg.registered_at.isoformat(),
            }
            for reg in self.snapshot()
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _as_mapping(value: Any) -> Mapping[str, Any]:
    """非对象的设置项按未配置处理"""
    return value if isinstance(value, Mapping) else {}


def _as_key_set(value: Any) -> FrozenSet[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, Iterable):
        return frozenset()
    return frozenset(str(v).strip() for v in value if str(v).strip())
