"""Backend 家族配置。

两个 Backend 的 webhook 协议几乎一致，只在以下几点不同：

- identifier_field：请求体中携带标识的字段名（flow_id / agent_id）。
- identifier_required：标识是否必填。
- default_text：响应中找不到回复字段时使用的文案。

上层只关心 Backend 名称，差异集中在这里配置，由同一个 WebhookAdapter 处理。"""

from dataclasses import dataclass
from typing import Mapping

from relay_core.domain.models import BackendType


GENERIC_APOLOGY = "Sorry, I encountered an error while processing your request."
CANCELLED_TEXT = "The request was cancelled before the agent replied."
UNREACHABLE_TEXT_TEMPLATE = (
    "I'm currently unable to connect to the AI agent. Please check your {display_name} configuration in Settings."
)


@dataclass(frozen=True)
class BackendSpec:
    """单个 Backend 家族的协议差异与文案。"""

    backend_type: BackendType
    display_name: str
    identifier_field: str
    identifier_required: bool
    default_text: str
    greeting: str
    config_missing_text: str

    @property
    def name(self) -> str:
        return self.backend_type.value

    @property
    def namespace(self) -> str:
        return self.backend_type.namespace

    @property
    def unreachable_text(self) -> str:
        return UNREACHABLE_TEXT_TEMPLATE.format(display_name=self.display_name)


ACTIVEPIECES_SPEC = BackendSpec(
    backend_type=BackendType.ACTIVEPIECES,
    display_name="Active Pieces",
    identifier_field="flow_id",
    identifier_required=False,
    default_text="No response from flow",
    greeting="Hello! I'm your business AI agent powered by Active Pieces. How can I help you today?",
    config_missing_text="Please configure your Active Pieces flow in Settings before starting a conversation.",
)

LINDY_SPEC = BackendSpec(
    backend_type=BackendType.LINDY,
    display_name="Lindy",
    identifier_field="agent_id",
    identifier_required=True,
    default_text="No response from agent",
    greeting="Hello! I'm your business AI agent powered by Lindy. How can I help you today?",
    config_missing_text="Please configure your Lindy agent in Settings before starting a conversation.",
)


BACKEND_REGISTRY: Mapping[str, BackendSpec] = {
    BackendType.ACTIVEPIECES.value: ACTIVEPIECES_SPEC,
    BackendType.LINDY.value: LINDY_SPEC,
}


def get_backend_spec(name: str | BackendType) -> BackendSpec:
    """根据名称获取 BackendSpec，名称不区分大小写。"""

    key = name.value if isinstance(name, BackendType) else str(name).strip().lower()
    try:
        return BACKEND_REGISTRY[key]
    except KeyError:
        raise KeyError(f"Unknown backend: {name!r}") from None
