"""Webhook 响应归一化。

不同 flow / agent 把回复放在不同字段里，这里按固定顺序取第一个存在的字段。
空字符串也算“存在”，优先于默认文案。
"""

from typing import Any

RESPONSE_FIELDS = ("text", "response", "message")


def normalize(payload: Any, default_text: str) -> str:
    if not isinstance(payload, dict):
        return default_text
    for key in RESPONSE_FIELDS:
        value = payload.get(key)
        if value is None:
            continue
        return value if isinstance(value, str) else str(value)
    return default_text
