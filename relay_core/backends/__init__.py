"""Webhook Backend 集成层。

该包下的模块负责：
- 定义 Backend 抽象接口 (base)。
- 维护两个 Backend 家族的协议差异与文案 (registry)。
- 提供统一的 webhook 实现 (webhook_client) 与响应归一化 (normalizer)。
"""

from typing import Optional

from relay_core.backends.base import BackendAdapter
from relay_core.backends.registry import get_backend_spec
from relay_core.backends.webhook_client import WebhookAdapter
from relay_core.config.settings import settings
from relay_core.domain.config_store import ConfigStore
from relay_core.infrastructure.storage.json_store import JsonConfigStore


def create_adapter(name: Optional[str] = None, store: Optional[ConfigStore] = None) -> BackendAdapter:
    """根据名称创建 Adapter 实例，默认取配置中的 backend。"""

    backend_name = name or settings.default_backend
    if store is None:
        store = JsonConfigStore(root=settings.storage_root)
    return WebhookAdapter(get_backend_spec(backend_name), store, settings)
