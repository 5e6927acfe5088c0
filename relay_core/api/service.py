"""对外 API 服务模块。

提供简化的函数接口供设置页与聊天界面调用。
"""

from typing import Any, Dict, Optional

from relay_core.backends import create_adapter
from relay_core.backends.registry import get_backend_spec
from relay_core.config.settings import settings
from relay_core.domain.config_store import ConfigStore
from relay_core.domain.exceptions import ValidationError
from relay_core.domain.models import BackendConfig
from relay_core.infrastructure.logging.logger import logger
from relay_core.infrastructure.storage.json_store import JsonConfigStore
from relay_core.session.conversation import ConversationSession


_store: Optional[ConfigStore] = None


def get_default_store() -> ConfigStore:
    """获取默认的配置存储实例（单例）。"""
    global _store
    if _store is None:
        _store = JsonConfigStore(root=settings.storage_root)
    return _store


def save_backend_config(
    backend: str,
    webhook_url: str,
    identifier: Optional[str] = None,
    api_key: Optional[str] = None,
    store: Optional[ConfigStore] = None,
) -> BackendConfig:
    """校验并保存某个 Backend 的连接配置（整条覆盖）。

    Args:
        backend: Backend 名称，如 activepieces、lindy
        webhook_url: Webhook 地址（必填）
        identifier: flow id / agent id，Lindy 必填
        api_key: 可选的 Bearer token

    Returns:
        实际保存的配置

    Raises:
        ValidationError: 必填字段缺失
    """
    spec = get_backend_spec(backend)
    webhook_url = (webhook_url or "").strip()
    if not webhook_url:
        raise ValidationError(code="MISSING_WEBHOOK_URL", message="Webhook URL is required", backend=spec.name)
    identifier = (identifier or "").strip() or None
    if spec.identifier_required and not identifier:
        raise ValidationError(
            code="MISSING_IDENTIFIER",
            message=f"{spec.identifier_field} is required for {spec.display_name}",
            backend=spec.name,
        )
    config = BackendConfig(
        backend_type=spec.backend_type,
        webhook_url=webhook_url,
        identifier=identifier,
        api_key=(api_key or "").strip() or None,
    )
    (store or get_default_store()).save(spec.backend_type, config)
    logger.info("Saved backend config", extra={"extra": {"backend": spec.name}})
    return config


def load_backend_config(backend: str, store: Optional[ConfigStore] = None) -> Optional[Dict[str, Any]]:
    """读取配置，返回持久化结构 {identifier?, webhookUrl, apiKey?}；未保存时返回 None。"""
    spec = get_backend_spec(backend)
    config = (store or get_default_store()).load(spec.backend_type)
    return config.to_record() if config else None


def create_session(
    backend: Optional[str] = None,
    user_id: Optional[str] = None,
    store: Optional[ConfigStore] = None,
) -> ConversationSession:
    """为聊天界面创建一个新的会话。"""
    adapter = create_adapter(backend, store=store or get_default_store())
    return ConversationSession(adapter, user_id=user_id)
