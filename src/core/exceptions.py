"""
异常定义
上游拉取、通知组装、推送网关相关的错误类型
"""
from typing import Optional


class RelayError(Exception):
    """通知中继基础异常"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamError(RelayError):
    """上游游戏数据接口不可用或返回格式错误"""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"[{source}] {message}")
        self.source = source
        self.status_code = status_code


class CompositionError(RelayError):
    """单条通知意图无法组装为推送内容"""


class GatewayError(RelayError):
    """推送网关配置错误（如签名密钥无法读取）"""
