"""Backend 抽象接口。

上层 ConversationSession 不直接依赖具体 webhook 的请求格式，而是依赖此协议：

- 每个 Backend 家族对应一个 BackendSpec，由 WebhookAdapter 统一实现。
- 负责：将用户消息转成 webhook 请求，并把响应 JSON 归一化为 NormalizedResponse。

这样可以在不改 Session 代码的前提下接入更多 Backend。
"""

import asyncio
from typing import Optional, Protocol

from relay_core.backends.registry import BackendSpec
from relay_core.domain.models import BackendConfig, DispatchOutcome, NormalizedResponse


class BackendAdapter(Protocol):
    """Backend 适配器协议。

    实现者需要提供：
    - name / spec: Backend 名称与协议差异，用于日志和文案。
    - load_config(): 读取最新配置，未配置时返回 None。
    - send(...): 执行一次投递，返回带标签的 DispatchOutcome，不抛传输异常。
    - dispatch(...): 在 send 之上渲染为 NormalizedResponse。
    """

    name: str
    spec: BackendSpec

    def load_config(self) -> Optional[BackendConfig]:
        ...

    def is_configured(self) -> bool:
        ...

    async def send(
        self,
        message: str,
        conversation_id: str,
        user_id: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> DispatchOutcome:
        ...

    async def dispatch(
        self,
        message: str,
        conversation_id: str,
        user_id: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> NormalizedResponse:
        ...
