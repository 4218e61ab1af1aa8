"""
通知分发
去重 -> 组装 -> 推送，不同设备并行，同一设备按计划顺序串行
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Protocol, Sequence

from src.config.logging_config import mask_token
from src.core.composer import NotificationComposer
from src.core.exceptions import CompositionError, GatewayError
from src.core.notify_dedupe import NotificationDeduper
from src.models.device import DeviceRegistration, DeviceRegistry
from src.models.notification import (
    DeliveryResult,
    DispatchSummary,
    NotificationIntent,
    NotificationPayload,
)

logger = logging.getLogger(__name__)


class PushGateway(Protocol):
    """推送网关接口"""

    def send(self, payload: NotificationPayload, device_token: str) -> DeliveryResult:
        ...


class NotificationDispatcher:
    """通知分发器"""

    def __init__(
        self,
        gateway: PushGateway,
        deduper: NotificationDeduper,
        composer: NotificationComposer,
        max_workers: int = 8,
    ):
        self.gateway = gateway
        self.deduper = deduper
        self.composer = composer
        self.max_workers = max(1, max_workers)

    def dispatch(
        self,
        intents: Sequence[NotificationIntent],
        registry: DeviceRegistry,
        now: float,
    ) -> DispatchSummary:
        """
        分发一批通知意图

        失败的设备只记录日志，本轮不重试，也不影响其他设备。
        """
        by_device: Dict[str, List[NotificationIntent]] = {}
        for intent in intents:
            by_device.setdefault(intent.device_token, []).append(intent)

        summary = DispatchSummary()
        if not by_device:
            return summary

        jobs = [
            (token, device_intents, registry.get(token))
            for token, device_intents in by_device.items()
        ]

        if len(jobs) == 1 or self.max_workers == 1:
            for token, device_intents, registration in jobs:
                summary.merge(self._dispatch_device(token, device_intents, registration, now))
            return summary

        workers = min(self.max_workers, len(jobs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dispatch") as pool:
            futures = [
                pool.submit(self._dispatch_device, token, device_intents, registration, now)
                for token, device_intents, registration in jobs
            ]
            for future in futures:
                summary.merge(future.result())

        return summary

    def _dispatch_device(
        self,
        device_token: str,
        intents: Sequence[NotificationIntent],
        registration: Optional[DeviceRegistration],
        now: float,
    ) -> DispatchSummary:
        """处理单个设备的全部意图"""
        summary = DispatchSummary()
        masked = mask_token(device_token)

        for intent in intents:
            signature = intent.signature
            if not self.deduper.should_send(device_token, signature, now):
                logger.info("跳过重复通知: %s -> %s", intent.canonical_key, masked)
                summary.suppressed += 1
                continue

            try:
                payload = self.composer.compose(intent, registration)
            except CompositionError as exc:
                logger.error("通知组装失败 %s -> %s: %s", intent.canonical_key, masked, exc)
                summary.composition_errors += 1
                continue

            if not self.deduper.check_and_record(device_token, signature, now):
                summary.suppressed += 1
                continue

            try:
                result = self.gateway.send(payload, device_token)
            except GatewayError as exc:
                result = DeliveryResult(failed_count=1, failure_reason=exc.message)

            if not result.ok:
                reason = result.failure_reason or "unknown"
                logger.warning("推送失败 %s -> %s: %s", payload.title, masked, reason)
                summary.failed += 1
                summary.failures.append((masked, reason))
            else:
                logger.info("推送成功 %s -> %s", payload.title, masked)
                summary.sent += 1

        return summary
