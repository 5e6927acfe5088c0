"""Webhook Backend 适配器。

两个 Backend 家族均使用同一种 webhook 协议：
- 方法: POST {webhook_url}
- 认证: Authorization: Bearer <api_key>（仅在配置了 api_key 时发送）
- 请求体: {text, conversation_id, user_id, <flow_id|agent_id>}

差异由 BackendSpec 描述。每次投递只尝试一次，不做重试。
"""

import asyncio
import contextlib
import logging
from typing import Any, Dict, Optional

import httpx

from relay_core.backends.normalizer import normalize
from relay_core.backends.registry import CANCELLED_TEXT, GENERIC_APOLOGY, BackendSpec
from relay_core.config.settings import settings
from relay_core.domain.config_store import ConfigStore
from relay_core.domain.exceptions import ConfigurationMissingError, NetworkError, TransportError
from relay_core.domain.models import BackendConfig, DispatchOutcome, NormalizedResponse
from relay_core.infrastructure.logging.logger import logger


class WebhookAdapter:
    """按 BackendSpec 参数化的 webhook 客户端实现。"""

    def __init__(
        self,
        spec: BackendSpec,
        store: ConfigStore,
        cfg=settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.spec = spec
        self.name = spec.name
        self._store = store
        self._settings = cfg
        self._transport = transport

    # ---- 配置 ----

    def load_config(self) -> Optional[BackendConfig]:
        """每次都从 store 读取，设置页的修改立即生效。"""

        config = self._store.load(self.spec.backend_type)
        if config is None or not config.webhook_url:
            return None
        if self.spec.identifier_required and not config.identifier:
            return None
        return config

    def is_configured(self) -> bool:
        return self.load_config() is not None

    # ---- 投递 ----

    async def send(
        self,
        message: str,
        conversation_id: str,
        user_id: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> DispatchOutcome:
        log_ctx: Dict[str, Any] = {"backend": self.name, "conversation_id": conversation_id}
        config = self.load_config()
        if config is None:
            self._log(logging.INFO, "Backend not configured, skipping webhook call", log_ctx)
            return DispatchOutcome(kind="config_missing")
        if cancel is not None and cancel.is_set():
            return DispatchOutcome(kind="cancelled")

        body = self._build_body(config, message, conversation_id, user_id)
        headers = self._build_headers(config)
        try:
            if cancel is None:
                payload = await self._post(config, body, headers)
            else:
                payload = await self._post_cancellable(config, body, headers, cancel)
                if payload is None:
                    self._log(logging.INFO, "Webhook call cancelled", log_ctx)
                    return DispatchOutcome(kind="cancelled")
        except TransportError as e:
            self._log(
                logging.ERROR,
                "Webhook call failed",
                log_ctx,
                code=e.code,
                status_code=e.status_code,
                status_text=e.status_text,
                error=e.message,
            )
            return DispatchOutcome(
                kind="transport_failed",
                status_code=e.status_code,
                status_text=e.status_text,
                detail=e.message,
            )
        except NetworkError as e:
            self._log(logging.ERROR, "Webhook unreachable", log_ctx, code=e.code, error=e.message)
            return DispatchOutcome(kind="network_failed", detail=e.message)

        text = normalize(payload, self.spec.default_text)
        self._log(logging.INFO, "Webhook call succeeded", log_ctx, reply_chars=len(text))
        return DispatchOutcome(kind="success", text=text)

    async def dispatch(
        self,
        message: str,
        conversation_id: str,
        user_id: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> NormalizedResponse:
        """投递一条消息并返回可直接展示的结果。

        除“未配置”外总能返回结果：传输/网络失败统一渲染为通用致歉文案，
        避免向终端用户暴露状态码等基础设施细节。

        Raises:
            ConfigurationMissingError: Backend 未配置，未发起网络请求。
        """

        outcome = await self.send(message, conversation_id, user_id=user_id, cancel=cancel)
        return self.render(outcome)

    def render(self, outcome: DispatchOutcome) -> NormalizedResponse:
        if outcome.ok:
            return NormalizedResponse(text=outcome.text or "", status="success")
        if outcome.kind == "config_missing":
            raise ConfigurationMissingError(
                code="CONFIG_MISSING",
                message=self.spec.config_missing_text,
                backend=self.name,
            )
        if outcome.kind == "cancelled":
            return NormalizedResponse(text=CANCELLED_TEXT, status="error")
        return NormalizedResponse(text=GENERIC_APOLOGY, status="error")

    # ---- 辅助方法 ----

    def _build_body(
        self,
        config: BackendConfig,
        message: str,
        conversation_id: str,
        user_id: Optional[str],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "text": message,
            "conversation_id": conversation_id,
            "user_id": user_id or getattr(self._settings, "default_user_id", "anonymous"),
        }
        if config.identifier is not None:
            body[self.spec.identifier_field] = config.identifier
        return body

    @staticmethod
    def _build_headers(config: BackendConfig) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        return headers

    async def _post(self, config: BackendConfig, body: Dict[str, Any], headers: Dict[str, str]) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.http_timeout,
                trust_env=False,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                resp = await client.post(config.webhook_url, json=body, headers=headers)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise NetworkError(code="NETWORK_ERROR", message=f"{type(e).__name__}: {e}", backend=self.name)
        except UnicodeEncodeError as e:
            # 请求头只能是 ASCII，非法的 api_key 在 httpx 构造请求时才暴露
            raise NetworkError(code="INVALID_REQUEST", message=f"{type(e).__name__}: {e}", backend=self.name)
        if not resp.is_success:
            raise TransportError(
                code="API_ERROR",
                message=f"{self.spec.display_name} API error: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
                status_text=resp.reason_phrase,
            )
        if not resp.content.strip():
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(
                code="INVALID_RESPONSE",
                message=f"{self.spec.display_name} returned a non-JSON body: {e}",
                status_code=resp.status_code,
                status_text=resp.reason_phrase,
            )

    async def _post_cancellable(
        self,
        config: BackendConfig,
        body: Dict[str, Any],
        headers: Dict[str, str],
        cancel: asyncio.Event,
    ) -> Optional[Any]:
        """与 cancel 事件赛跑；取消时返回 None。"""

        post_task = asyncio.ensure_future(self._post(config, body, headers))
        cancel_task = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({post_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (post_task, cancel_task):
                if not task.done():
                    task.cancel()
        if post_task in done:
            return post_task.result()
        with contextlib.suppress(asyncio.CancelledError):
            await post_task
        return None

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
