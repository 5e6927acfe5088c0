"""领域层模型与协议。

包含：
- models: BackendConfig / Message / NormalizedResponse 等统一模型。
- config_store: Backend 配置的持久化抽象 ConfigStore。
- exceptions: 业务异常类型定义。
"""
