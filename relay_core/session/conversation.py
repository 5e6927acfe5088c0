"""会话编排模块。

ConversationSession 持有有序的消息日志和 Idle/AwaitingResponse 状态机，
UI 只订阅 messages 与 awaiting_response 两个可观察值。
"""

import asyncio
import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from relay_core.backends.base import BackendAdapter
from relay_core.backends.registry import CANCELLED_TEXT
from relay_core.domain.exceptions import ConfigurationMissingError
from relay_core.domain.models import Message, Sender, SessionState
from relay_core.infrastructure.logging.logger import logger
from relay_core.session.observable import Observable


class ConversationSession:
    """单个聊天界面对应的会话。

    - 初始状态为 IDLE，日志中预置一条 bot 问候语。
    - 每条被接受的用户消息都会且只会产生一条 bot 消息。
    - 消息按完成顺序追加，而非按时间戳排序。
    """

    def __init__(
        self,
        adapter: BackendAdapter,
        user_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ):
        self._adapter = adapter
        self._user_id = user_id
        self._conversation_id = conversation_id or f"chat-{uuid4().hex}"
        self._ids = itertools.count(1)
        self._state = SessionState.IDLE
        self._cancel = asyncio.Event()
        self._closed = False
        self.messages: Observable[Tuple[Message, ...]] = Observable(())
        self.awaiting_response: Observable[bool] = Observable(False)
        self._append(adapter.spec.greeting, "bot")

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    def send_user_message(self, content: str) -> Optional["asyncio.Task[Message]"]:
        """追加用户消息并在后台发起投递（fire-and-forget）。

        内容为空白、会话非 IDLE 或已关闭时直接忽略并返回 None；
        否则返回负责追加 bot 回复的 Task。必须在运行中的事件循环内调用。
        """

        log_ctx = self._log_ctx()
        if not content or not content.strip():
            self._log(logging.DEBUG, "Ignored blank message", log_ctx)
            return None
        if self._closed or self._state is not SessionState.IDLE:
            self._log(logging.DEBUG, "Ignored message while busy", log_ctx, state=self._state.value)
            return None
        loop = asyncio.get_running_loop()

        user_msg = self._append(content, "user")
        self._set_state(SessionState.AWAITING_RESPONSE)
        self._log(logging.INFO, "Accepted user message", log_ctx, message_id=user_msg.id)
        return loop.create_task(self._relay(content))

    async def send(self, content: str) -> Optional[Message]:
        """发送并等待回复，返回本次追加的 bot 消息（被忽略时为 None）。"""

        task = self.send_user_message(content)
        if task is None:
            return None
        return await task

    def close(self) -> None:
        """关闭会话并取消进行中的投递；进行中的投递仍会追加一条 bot 消息。"""

        self._closed = True
        self._cancel.set()

    async def _relay(self, content: str) -> Message:
        log_ctx = self._log_ctx()
        spec = self._adapter.spec
        reply = spec.unreachable_text
        try:
            reply = await self._resolve_reply(content)
        except asyncio.CancelledError:
            reply = CANCELLED_TEXT
            raise
        except Exception as e:
            logger.exception(
                "Relay failed unexpectedly",
                extra={"extra": {**log_ctx, "error": str(e)}},
            )
        finally:
            bot_msg = self._append(reply, "bot")
            self._set_state(SessionState.IDLE)
            self._log(logging.INFO, "Appended bot message", log_ctx, message_id=bot_msg.id)
        return bot_msg

    async def _resolve_reply(self, content: str) -> str:
        spec = self._adapter.spec
        if not self._adapter.is_configured():
            self._log(logging.INFO, "Backend not configured", self._log_ctx())
            return spec.config_missing_text
        try:
            response = await self._adapter.dispatch(
                content,
                self._conversation_id,
                user_id=self._user_id,
                cancel=self._cancel,
            )
        except ConfigurationMissingError:
            return spec.config_missing_text
        return response.text

    def _append(self, content: str, sender: Sender) -> Message:
        msg = Message(
            id=str(next(self._ids)),
            content=content,
            sender=sender,
            timestamp=datetime.now(timezone.utc),
        )
        self.messages.set(self.messages.value + (msg,))
        return msg

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        self.awaiting_response.set(state is SessionState.AWAITING_RESPONSE)

    def _log_ctx(self) -> Dict[str, Any]:
        return {"backend": self._adapter.name, "conversation_id": self._conversation_id}

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
