"""统一的配置、消息与响应数据模型。

本模块定义了 Relay 内部在不同 Backend 之间共享的标准数据结构：

- BackendConfig: 某个 Backend 的连接配置（webhook 地址、标识、密钥）。
- Message: 会话日志中的一条消息（user/bot）。
- NormalizedResponse: Adapter 返回给 Session 的统一结果。
- DispatchOutcome: 一次投递的传输层结果，与面向用户的文案解耦。

所有 Backend 适配器都必须只依赖这些模型，
并负责在各自的 webhook JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional


# 消息发送方
Sender = Literal["user", "bot"]
ResponseStatus = Literal["success", "error"]
OutcomeKind = Literal["success", "config_missing", "transport_failed", "network_failed", "cancelled"]


class BackendType(str, Enum):
    """支持的 Backend 家族，取值即配置与工厂使用的 key。"""

    ACTIVEPIECES = "activepieces"
    LINDY = "lindy"

    @property
    def namespace(self) -> str:
        """持久化记录使用的固定名称，如 "lindy-config"。"""

        return f"{self.value}-config"


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


# 原前端写入的记录中 identifier 使用的字段名
_LEGACY_IDENTIFIER_KEYS = ("flowId", "agentId")


@dataclass
class BackendConfig:
    """单个 Backend 的连接配置。

    - webhook_url: 必填，投递时为空视为未配置。
    - identifier: flow id / agent id，是否必填由 Backend 决定。
    - api_key: 可选；非空时以 Bearer token 发送。
    """

    backend_type: BackendType
    webhook_url: str
    identifier: Optional[str] = None
    api_key: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        """转换为持久化的 JSON 结构 {identifier?, webhookUrl, apiKey?}。"""

        record: Dict[str, Any] = {"webhookUrl": self.webhook_url}
        if self.identifier is not None:
            record["identifier"] = self.identifier
        if self.api_key is not None:
            record["apiKey"] = self.api_key
        return record

    @classmethod
    def from_record(cls, backend_type: BackendType, record: Mapping[str, Any]) -> "BackendConfig":
        identifier = record.get("identifier")
        if identifier is None:
            for key in _LEGACY_IDENTIFIER_KEYS:
                if record.get(key) is not None:
                    identifier = record[key]
                    break
        return cls(
            backend_type=backend_type,
            webhook_url=record.get("webhookUrl") or "",
            identifier=identifier,
            api_key=record.get("apiKey"),
        )


@dataclass(frozen=True)
class Message:
    id: str
    content: str
    sender: Sender
    timestamp: datetime


@dataclass(frozen=True)
class NormalizedResponse:
    text: str
    status: ResponseStatus


@dataclass(frozen=True)
class DispatchOutcome:
    """一次投递的结果标签。

    kind:
        - "success": webhook 返回 2xx，text 为归一化后的回复。
        - "config_missing": 未配置，未发起任何网络请求。
        - "transport_failed": webhook 返回非 2xx 或无法解析的响应体。
        - "network_failed": 请求未拿到响应（DNS、连接、超时）。
        - "cancelled": 调用方在响应到达前取消。
    """

    kind: OutcomeKind
    text: Optional[str] = None
    status_code: Optional[int] = None
    status_text: str = ""
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.kind == "success"
