import json
import os
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from relay_core.config.settings import settings
from relay_core.domain.config_store import ConfigStore
from relay_core.domain.exceptions import BusinessError
from relay_core.domain.models import BackendConfig, BackendType
from relay_core.infrastructure.logging.logger import logger


class JsonConfigStore(ConfigStore):
    """每个 Backend 一份 JSON 记录：<root>/configs/<namespace>.json。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._cfg_root = self._root / "configs"
        self._cfg_root.mkdir(parents=True, exist_ok=True)

    def load(self, backend_type: BackendType) -> Optional[BackendConfig]:
        path = self._path(backend_type)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self._warn_malformed(backend_type, path, str(e))
            return None
        if not self._is_valid_record(data):
            self._warn_malformed(backend_type, path, "unexpected record shape")
            return None
        return BackendConfig.from_record(backend_type, data)

    def save(self, backend_type: BackendType, config: BackendConfig) -> None:
        path = self._path(backend_type)
        tmp_path = self._cfg_root / f"{backend_type.namespace}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(config.to_record(), ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e), backend=backend_type.value)

    def _path(self, backend_type: BackendType) -> Path:
        return self._cfg_root / f"{backend_type.namespace}.json"

    @staticmethod
    def _is_valid_record(data: Any) -> bool:
        if not isinstance(data, dict):
            return False
        for key in ("webhookUrl", "identifier", "apiKey", "flowId", "agentId"):
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                return False
        return True

    @staticmethod
    def _warn_malformed(backend_type: BackendType, path: Path, reason: str) -> None:
        logger.warning(
            "Ignoring malformed backend config",
            extra={"extra": {"backend": backend_type.value, "path": str(path), "reason": reason}},
        )


class InMemoryConfigStore(ConfigStore):
    """进程内存实现，主要供测试替换持久化存储。"""

    def __init__(self, records: Optional[Dict[BackendType, BackendConfig]] = None):
        self._records: Dict[BackendType, Dict[str, Any]] = {}
        for backend_type, config in (records or {}).items():
            self.save(backend_type, config)

    def load(self, backend_type: BackendType) -> Optional[BackendConfig]:
        record = self._records.get(backend_type)
        if record is None:
            return None
        return BackendConfig.from_record(backend_type, record)

    def save(self, backend_type: BackendType, config: BackendConfig) -> None:
        self._records[backend_type] = dict(config.to_record())
