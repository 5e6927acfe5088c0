"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 Session 层或 UI 层做统一捕获与用户提示。
"""

from typing import Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_WRITE_ERROR"）。
        message: 可读错误信息（仅用于日志，不直接展示给终端用户）。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 backend、webhook 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationMissingError(BusinessError):
    """Backend 尚未配置（无记录、webhookUrl 为空或缺少必填 identifier）。

    属于预期情况，不按错误级别记录日志。
    """


class TransportError(BusinessError):
    """Webhook 返回非 2xx 状态码时抛出。"""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: Optional[int] = None,
        status_text: str = "",
        **extra,
    ):
        super().__init__(code=code, message=message, http_status=status_code or 502, **extra)
        self.status_code = status_code
        self.status_text = status_text


class NetworkError(BusinessError):
    """网络层错误，例如 DNS 失败、连接被拒绝、超时等。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""
