"""
APNs 推送客户端
HTTP/2 + ES256 provider token
"""

import logging
import threading
import time
from pathlib import Path
from typing import Optional

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from src.config.logging_config import mask_token
from src.config.settings import Settings
from src.core.exceptions import GatewayError
from src.models.notification import DeliveryResult, NotificationPayload

logger = logging.getLogger(__name__)

PRODUCTION_HOST = "https://api.push.apple.com"
SANDBOX_HOST = "https://api.sandbox.push.apple.com"

# Apple 要求 provider token 20-60 分钟内刷新
TOKEN_TTL_SECONDS = 50 * 60


class ApnsClient:
    """APNs 推送客户端"""

    def __init__(
        self,
        key_id: str,
        team_id: str,
        bundle_id: str,
        signing_key: str,
        production: bool = False,
        timeout: float = 10,
        client: Optional[httpx.Client] = None,
    ):
        """初始化客户端"""
        self.key_id = key_id
        self.team_id = team_id
        self.bundle_id = bundle_id
        self.host = PRODUCTION_HOST if production else SANDBOX_HOST
        self._signing_key = signing_key
        self._client = client or httpx.Client(http2=True, timeout=timeout)
        self._token: Optional[str] = None
        self._token_issued_at = 0.0
        self._token_lock = threading.Lock()

    def _provider_token(self) -> str:
        """
        获取 provider token（缓存 50 分钟）

        Raises:
            GatewayError: 签名失败（密钥无效）
        """
        with self._token_lock:
            now = time.time()
            if self._token and (now - self._token_issued_at) < TOKEN_TTL_SECONDS:
                return self._token
            try:
                self._token = jwt.encode(
                    {"iss": self.team_id, "iat": int(now)},
                    self._signing_key,
                    algorithm="ES256",
                    headers={"kid": self.key_id},
                )
            except JOSEError as e:
                raise GatewayError(f"APNs token 签名失败: {e}") from e
            self._token_issued_at = now
            return self._token

    def _invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None

    def send(self, payload: NotificationPayload, device_token: str) -> DeliveryResult:
        """
        发送推送

        不抛出异常，失败原因记录在返回值中

        Args:
            payload: 推送内容
            device_token: 设备 token

        Returns:
            发送结果
        """
        try:
            token = self._provider_token()
        except GatewayError as e:
            return DeliveryResult(failed_count=1, failure_reason=e.message)

        try:
            response = self._client.post(
                f"{self.host}/3/device/{device_token}",
                json=payload.to_apns(),
                headers={
                    "authorization": f"bearer {token}",
                    "apns-topic": self.bundle_id,
                    "apns-push-type": "alert",
                    "apns-priority": "10",
                },
            )
        except httpx.HTTPError as e:
            return DeliveryResult(failed_count=1, failure_reason=f"network error: {e}")

        if response.status_code == 200:
            logger.debug("APNs 接受推送: %s", mask_token(device_token))
            return DeliveryResult(sent_count=1)

        reason = f"HTTP {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("reason"):
            reason = body["reason"]

        if reason == "ExpiredProviderToken":
            self._invalidate_token()

        return DeliveryResult(failed_count=1, failure_reason=reason)

    def close(self) -> None:
        self._client.close()


def build_push_client(settings: Settings) -> Optional[ApnsClient]:
    """
    根据配置创建 APNs 客户端

    Returns:
        未配置时返回 None

    Raises:
        GatewayError: 密钥文件无法读取
    """
    if not settings.apns_configured:
        return None

    signing_key = settings.APNS_KEY_CONTENT
    if not signing_key:
        try:
            signing_key = Path(settings.APNS_KEY_PATH).read_text(encoding="utf-8")
        except OSError as e:
            raise GatewayError(f"无法读取 APNs 密钥文件 {settings.APNS_KEY_PATH}: {e}") from e

    return ApnsClient(
        key_id=settings.APNS_KEY_ID,
        team_id=settings.APNS_TEAM_ID,
        bundle_id=settings.APNS_BUNDLE_ID,
        signing_key=signing_key,
        production=settings.APNS_PRODUCTION,
        timeout=settings.APNS_TIMEOUT,
    )
