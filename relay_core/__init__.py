"""Relay Core 顶层包。

该包把聊天界面的用户消息转发给外部托管的 Agent 自动化流程
（Active Pieces / Lindy webhook），包括配置加载、领域模型、
Backend 适配、响应归一化与会话编排等能力。
"""

from relay_core.api.service import create_session, load_backend_config, save_backend_config

__all__ = ["create_session", "load_backend_config", "save_backend_config"]
