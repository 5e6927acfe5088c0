"""会话编排：ConversationSession 与可观察值。"""

from .conversation import ConversationSession
from .observable import Observable

__all__ = ["ConversationSession", "Observable"]
