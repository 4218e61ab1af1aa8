"""
快照存储
保存当前与上一轮的库存/天气快照，每个轮询周期整体替换一次
"""
import threading
from dataclasses import dataclass
from typing import Optional

from src.models.catalog import CatalogSnapshot, EventState, WeatherSnapshot


@dataclass(frozen=True)
class StoreView:
    """某一时刻的快照对（只读）"""
    previous_catalog: CatalogSnapshot
    current_catalog: CatalogSnapshot
    previous_weather: WeatherSnapshot
    current_weather: WeatherSnapshot
    event: Optional[EventState]


class SnapshotStore:
    """快照存储

    previous 始终是上一轮的 current；快照本身不可变，替换只交换引用。
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._previous_catalog = CatalogSnapshot()
        self._current_catalog = CatalogSnapshot()
        self._previous_weather = WeatherSnapshot()
        self._current_weather = WeatherSnapshot()
        self._event: Optional[EventState] = None

    def swap(
        self,
        catalog: Optional[CatalogSnapshot],
        weather: Optional[WeatherSnapshot],
    ) -> StoreView:
        """
        原子替换快照

        Args:
            catalog: 新库存快照；None 表示拉取失败，保留上次成功的 current
            weather: 新天气快照；None 表示本轮无天气数据（视为空快照）

        Returns:
            替换后的快照视图
        """
        with self._lock:
            self._previous_catalog = self._current_catalog
            if catalog is not None:
                self._current_catalog = catalog

            self._previous_weather = self._current_weather
            self._current_weather = weather if weather is not None else WeatherSnapshot()

            return self._view()

    def set_event(self, event: Optional[EventState]) -> None:
        with self._lock:
            self._event = event

    def view(self) -> StoreView:
        with self._lock:
            return self._view()

    @property
    def current_catalog(self) -> CatalogSnapshot:
        with self._lock:
            return self._current_catalog

    @property
    def event(self) -> Optional[EventState]:
        with self._lock:
            return self._event

    def _view(self) -> StoreView:
        return StoreView(
            previous_catalog=self._previous_catalog,
            current_catalog=self._current_catalog,
            previous_weather=self._previous_weather,
            current_weather=self._current_weather,
            event=self._event,
        )
