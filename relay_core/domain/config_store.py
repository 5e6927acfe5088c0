from typing import Optional, Protocol

from .models import BackendConfig, BackendType


class ConfigStore(Protocol):
    def load(self, backend_type: BackendType) -> Optional[BackendConfig]:
        ...

    def save(self, backend_type: BackendType, config: BackendConfig) -> None:
        ...
