"""通知去重器

按设备维护滑动窗口，避免同一变化在短时间内重复推送（例如：补货模式下
库存未变、轮询抖动、上游返回顺序变化等）。
实现要求：
- 内存级别、无外部依赖
- 以 (设备 token, 签名) 为键，窗口内只发送一次
- 每次写入时清理该设备超过 2 倍窗口的记录
- 同一设备内读-写原子，不同设备互不阻塞
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class NotificationDeduper:
    """基于滑动窗口的按设备通知去重器"""

    window_seconds: float = 300
    _seen: Dict[str, Dict[str, float]] = field(default_factory=dict)
    _locks: Dict[str, threading.Lock] = field(default_factory=dict)
    _locks_guard: threading.Lock = field(default_factory=threading.Lock)

    def should_send(self, device_token: str, signature: str, now: Optional[float] = None) -> bool:
        """判断是否应发送（不记录）

        Returns:
            False 表示窗口内已发送过同签名通知
        """
        now = time.time() if now is None else now
        with self._device_lock(device_token):
            return self._allowed(device_token, signature, now)

    def record(self, device_token: str, signature: str, now: Optional[float] = None) -> None:
        """记录一次发送，并清理该设备的过期记录"""
        now = time.time() if now is None else now
        with self._device_lock(device_token):
            self._record(device_token, signature, now)

    def check_and_record(
        self, device_token: str, signature: str, now: Optional[float] = None
    ) -> bool:
        """原子地判断并记录

        Returns:
            True 表示允许发送（已记录）；False 表示应跳过（重复）
        """
        now = time.time() if now is None else now
        with self._device_lock(device_token):
            if not self._allowed(device_token, signature, now):
                return False
            self._record(device_token, signature, now)
            return True

    def last_sent(self, device_token: str, signature: str) -> Optional[float]:
        with self._device_lock(device_token):
            return self._seen.get(device_token, {}).get(signature)

    def clear(self) -> int:
        """清空全部记录，返回清理的条数"""
        with self._locks_guard:
            count = sum(len(entries) for entries in self._seen.values())
            self._seen.clear()
            return count

    def size(self) -> int:
        return sum(len(entries) for entries in list(self._seen.values()))

    def _allowed(self, device_token: str, signature: str, now: float) -> bool:
        last = self._seen.get(device_token, {}).get(signature)
        return last is None or (now - last) >= self.window_seconds

    def _record(self, device_token: str, signature: str, now: float) -> None:
        entries = self._seen.setdefault(device_token, {})
        self._cleanup(entries, now)
        entries[signature] = now

    def _cleanup(self, entries: Dict[str, float], now: float) -> None:
        """清理超过 2 倍窗口的记录"""
        expire_before = now - self.window_seconds * 2
        expired = [k for k, t in entries.items() if t < expire_before]
        for k in expired:
            entries.pop(k, None)

    def _device_lock(self, device_token: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(device_token)
            if lock is None:
                lock = self._locks[device_token] = threading.Lock()
            return lock
