"""
测试公共 fixture
"""

import threading
from typing import Dict, List, Optional, Tuple

import pytest

from src.config.settings import Settings
from src.core.rarity import RarityResolver
from src.models.catalog import (
    CatalogItem,
    CatalogSnapshot,
    Category,
    EventState,
    WeatherEntry,
    WeatherSnapshot,
)
from src.models.device import DeviceRegistration, DeviceRegistry
from src.models.notification import DeliveryResult, NotificationPayload


def make_catalog(quantities: Dict[str, int], category: Category = Category.SEEDS) -> CatalogSnapshot:
    """按 {名称: 数量} 构建库存快照"""
    return CatalogSnapshot.from_items(
        CatalogItem(key=name, quantity=qty, category=category)
        for name, qty in quantities.items()
    )


def make_weather(states: Dict[str, bool]) -> WeatherSnapshot:
    """按 {weather_id: active} 构建天气快照"""
    return WeatherSnapshot.from_entries(
        WeatherEntry(weather_id=wid, name=wid.replace("_", " ").title(), active=active, duration=600)
        for wid, active in states.items()
    )


def make_registration(token: str = "device-token-0001", **payload) -> DeviceRegistration:
    """按注册 JSON 构建设备注册信息"""
    data = {"device_token": token}
    data.update(payload)
    return DeviceRegistration.from_payload(data)


class FakeFetcher:
    """可编排的上游数据源，按调用顺序返回预设结果"""

    def __init__(self):
        self.catalogs: List[object] = []
        self.weathers: List[object] = []
        self.event: Optional[EventState] = None
        self.event_error: Optional[Exception] = None
        self.event_calls = 0

    def fetch_catalog(self) -> CatalogSnapshot:
        result = self.catalogs.pop(0) if len(self.catalogs) > 1 else self.catalogs[0]
        if isinstance(result, Exception):
            raise result
        return result

    def fetch_weather(self) -> WeatherSnapshot:
        if not self.weathers:
            return WeatherSnapshot()
        result = self.weathers.pop(0) if len(self.weathers) > 1 else self.weathers[0]
        if isinstance(result, Exception):
            raise result
        return result

    def fetch_event(self) -> Optional[EventState]:
        self.event_calls += 1
        if self.event_error is not None:
            raise self.event_error
        return self.event


class FakeGateway:
    """记录发送内容的推送网关"""

    def __init__(self, failing_tokens=()):
        self.failing_tokens = set(failing_tokens)
        self.sent: List[Tuple[NotificationPayload, str]] = []
        self._lock = threading.Lock()

    def send(self, payload: NotificationPayload, device_token: str) -> DeliveryResult:
        if device_token in self.failing_tokens:
            return DeliveryResult(failed_count=1, failure_reason="BadDeviceToken")
        with self._lock:
            self.sent.append((payload, device_token))
        return DeliveryResult(sent_count=1)

    def payloads_for(self, device_token: str) -> List[NotificationPayload]:
        return [payload for payload, token in self.sent if token == device_token]


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def resolver() -> RarityResolver:
    return RarityResolver()


@pytest.fixture
def registry() -> DeviceRegistry:
    return DeviceRegistry()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
