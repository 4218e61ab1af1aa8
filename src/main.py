"""
商店库存通知中继主程序
轮询游戏数据，检测补货/天气/活动变化，通过 APNs 推送给注册设备
"""

import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

from src.apns.push_client import build_push_client
from src.config.logging_config import setup_logging
from src.config.settings import Settings, get_settings
from src.core.change_detector import (
    detect_event_trigger,
    detect_item_changes,
    detect_weather_changes,
    event_changed,
    summarize_item_changes,
)
from src.core.composer import NotificationComposer
from src.core.dispatcher import NotificationDispatcher, PushGateway
from src.core.exceptions import GatewayError, UpstreamError
from src.core.notify_dedupe import NotificationDeduper
from src.core.notify_policy import NotificationPolicy
from src.core.rarity import Rarity, RarityResolver
from src.core.snapshot_store import SnapshotStore, StoreView
from src.models.catalog import CatalogSnapshot, EventState, WeatherSnapshot
from src.models.device import DeviceRegistry
from src.models.notification import DetectionMode, DispatchSummary
from src.upstream.game_api_client import GameApiClient

logger = logging.getLogger(__name__)


class GameDataFetcher(Protocol):
    """游戏数据来源接口"""

    def fetch_catalog(self) -> CatalogSnapshot:
        ...

    def fetch_weather(self) -> WeatherSnapshot:
        ...

    def fetch_event(self) -> Optional[EventState]:
        ...


class CycleStage(Enum):
    """轮询周期阶段"""
    IDLE = "idle"
    SNAPSHOT_SWAPPED = "snapshot_swapped"
    DIFFED = "diffed"
    PLANNED = "planned"
    DEDUPED = "deduped"
    DISPATCHED = "dispatched"


@dataclass
class CycleReport:
    """单个周期的执行结果"""
    stage: CycleStage = CycleStage.IDLE
    catalog_ok: bool = True
    weather_ok: bool = True
    item_deltas: int = 0
    weather_deltas: int = 0
    event_triggered: bool = False
    intents: int = 0
    dispatch: DispatchSummary = field(default_factory=DispatchSummary)


class StockMonitor:
    """库存通知监控器

    持有全部引擎状态（注册表、快照、去重缓存），周期串行执行。
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetcher: Optional[GameDataFetcher] = None,
        gateway: Optional[PushGateway] = None,
        registry: Optional[DeviceRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """初始化监控器"""
        self.settings = settings or get_settings()
        self.clock = clock or _utc_now
        self.sleep = sleep
        self.fetcher = fetcher or GameApiClient(self.settings)
        self.registry = registry or DeviceRegistry()
        self.snapshots = SnapshotStore()
        self.deduper = NotificationDeduper(window_seconds=self.settings.NOTIFY_DEDUPE_WINDOW)

        premium = Rarity.parse(self.settings.PREMIUM_RARITY)
        if premium is None:
            logger.warning("premium_rarity 配置无效: %s，使用 Prismatic", self.settings.PREMIUM_RARITY)
            premium = Rarity.PRISMATIC
        self.resolver = RarityResolver.from_config(self.settings.RARITY_OVERRIDES)
        self.policy = NotificationPolicy(self.resolver, premium_rarity=premium)
        self.composer = NotificationComposer(max_listed_items=self.settings.MAX_LISTED_ITEMS)

        if gateway is None:
            gateway = self._build_gateway()
        self.gateway = gateway
        self.dispatcher: Optional[NotificationDispatcher] = None
        if gateway is not None:
            self.dispatcher = NotificationDispatcher(
                gateway,
                self.deduper,
                self.composer,
                max_workers=self.settings.DISPATCH_WORKERS,
            )

        # 上次拉取活动信息的时间
        self._last_event_fetch: Optional[datetime] = None

    def _build_gateway(self) -> Optional[PushGateway]:
        try:
            client = build_push_client(self.settings)
        except GatewayError as e:
            logger.error("APNs 初始化失败: %s", e.message)
            return None
        if client is None:
            logger.warning("APNs 未配置，将只检测变化不发送推送")
        return client

    def run(self):
        """
        运行监控循环

        周期串行、按固定频率启动：下一轮的等待时间扣除本轮耗时，
        保证每分钟的前 30 秒内至少有一次轮询。
        """
        logger.info("=== 库存通知中继启动 ===")
        logger.info("轮询间隔: %d 秒", self.settings.POLL_INTERVAL)
        logger.info("活动刷新间隔: %d 秒", self.settings.EVENT_POLL_INTERVAL)
        logger.info("APNs: %s", "已就绪" if self.dispatcher else "未配置")

        try:
            while True:
                started = self.clock()
                try:
                    self.poll_once(started)
                except Exception:
                    logger.exception("轮询周期异常")
                elapsed = (self.clock() - started).total_seconds()
                if elapsed > self.settings.POLL_INTERVAL:
                    logger.warning("轮询周期耗时 %.1f 秒，超过轮询间隔", elapsed)
                self.sleep(max(0.0, self.settings.POLL_INTERVAL - elapsed))

        except KeyboardInterrupt:
            logger.info("=== 监控已停止 ===")

    def poll_once(self, now: Optional[datetime] = None) -> CycleReport:
        """
        执行一次轮询周期

        库存与天气并行拉取，两者都返回后才替换快照，
        保证检测器对比的是两份完整快照。
        """
        now = now or self.clock()
        report = CycleReport()

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="fetch") as pool:
            catalog_future = pool.submit(self._fetch_catalog)
            weather_future = pool.submit(self._fetch_weather)
            catalog = catalog_future.result()
            weather = weather_future.result()

        report.catalog_ok = catalog is not None
        report.weather_ok = weather is not None
        self.snapshots.swap(catalog, weather)
        report.stage = CycleStage.SNAPSHOT_SWAPPED

        self._refresh_event_if_due(now)
        view = self.snapshots.view()

        if len(self.registry) == 0:
            logger.info("没有已注册设备，跳过变化检测")
            return report

        return self._process(view, now, DetectionMode.RESTOCK, report)

    def check_availability(self, now: Optional[datetime] = None) -> CycleReport:
        """手动可用性检查：对当前快照中有货的收藏商品发送通知"""
        now = now or self.clock()
        report = CycleReport()
        if len(self.registry) == 0:
            logger.info("没有已注册设备，跳过可用性检查")
            return report
        return self._process(self.snapshots.view(), now, DetectionMode.AVAILABILITY, report)

    def _process(
        self, view: StoreView, now: datetime, mode: DetectionMode, report: CycleReport
    ) -> CycleReport:
        """检测 -> 策略 -> 去重 -> 分发"""
        item_deltas = detect_item_changes(
            view.previous_catalog,
            view.current_catalog,
            self.registry.favorite_item_keys(),
            mode,
        )

        weather_deltas = []
        event_delta = None
        if mode == DetectionMode.RESTOCK:
            summary = summarize_item_changes(view.previous_catalog, view.current_catalog)
            logger.info(
                "库存变化: %d 个商品数量变化, %d 个补货, %d 个售罄",
                summary.changed,
                summary.restocked,
                summary.sold_out,
            )
            weather_deltas = detect_weather_changes(view.previous_weather, view.current_weather)
            event_delta = detect_event_trigger(view.event, now)

        report.item_deltas = len(item_deltas)
        report.weather_deltas = len(weather_deltas)
        report.event_triggered = event_delta is not None
        report.stage = CycleStage.DIFFED

        intents = self.policy.plan(item_deltas, weather_deltas, event_delta, self.registry)
        report.intents = len(intents)
        report.stage = CycleStage.PLANNED
        logger.info(
            "[%s] %d 个商品有货, %d 个天气变化, 活动提醒: %s, 生成 %d 条通知意图",
            mode.value,
            len(item_deltas),
            len(weather_deltas),
            f"{event_delta.name} -{event_delta.minutes_before}min" if event_delta else "无",
            len(intents),
        )

        if not intents:
            return report

        if self.dispatcher is None:
            logger.warning("APNs 不可用，跳过 %d 条通知", len(intents))
            return report

        report.dispatch = self.dispatcher.dispatch(intents, self.registry, now.timestamp())
        # 全部被去重拦截时停在 DEDUPED
        if report.dispatch.sent or report.dispatch.failed:
            report.stage = CycleStage.DISPATCHED
        else:
            report.stage = CycleStage.DEDUPED
        logger.info(
            "分发完成: 成功 %d, 失败 %d, 去重跳过 %d, 组装失败 %d",
            report.dispatch.sent,
            report.dispatch.failed,
            report.dispatch.suppressed,
            report.dispatch.composition_errors,
        )
        return report

    def _fetch_catalog(self) -> Optional[CatalogSnapshot]:
        """拉取库存，失败返回 None（保留上次快照）"""
        try:
            return self.fetcher.fetch_catalog()
        except UpstreamError as e:
            logger.warning(
                "库存拉取失败: %s，保留现有 %d 个商品",
                e.message,
                len(self.snapshots.current_catalog),
            )
            return None

    def _fetch_weather(self) -> Optional[WeatherSnapshot]:
        """拉取天气，失败返回 None（本轮视为无天气数据）"""
        try:
            return self.fetcher.fetch_weather()
        except UpstreamError as e:
            logger.warning("天气拉取失败: %s，本轮跳过天气", e.message)
            return None

    def _refresh_event_if_due(self, now: datetime) -> None:
        """按活动刷新间隔更新活动信息，失败时保留上次结果"""
        if self._last_event_fetch is not None:
            elapsed = (now - self._last_event_fetch).total_seconds()
            if elapsed < self.settings.EVENT_POLL_INTERVAL:
                return

        self._last_event_fetch = now
        try:
            event = self.fetcher.fetch_event()
        except UpstreamError as e:
            logger.warning("活动信息拉取失败: %s", e.message)
            return

        previous = self.snapshots.event
        self.snapshots.set_event(event)
        if not event_changed(previous, event):
            return
        if event:
            logger.info("活动切换: %s (触发分钟 :%02d)", event.name, event.corrected_trigger_minute)
        else:
            logger.info("当前没有定时活动")


def _utc_now() -> datetime:
    """活动触发分钟按 UTC 计算"""
    return datetime.now(timezone.utc)


def main():
    """主函数"""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.VERBOSE)

    # 检查配置
    if not settings.UPSTREAM_API_KEY:
        logger.error("错误: 未配置上游 API key ([upstream] api_key)")
        sys.exit(1)

    # 启动监控
    monitor = StockMonitor(settings)
    monitor.run()


if __name__ == "__main__":
    main()
