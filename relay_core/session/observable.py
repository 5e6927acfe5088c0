"""Minimal observable value used to expose session state to UI subscribers."""

from __future__ import annotations

from typing import Callable, Generic, List, TypeVar

from relay_core.infrastructure.logging.logger import logger

T = TypeVar("T")


class Observable(Generic[T]):
    """Holds a value and notifies subscribers on every ``set``."""

    def __init__(self, value: T):
        self._value = value
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                # 订阅方的异常不能打断会话状态机
                logger.exception("Observable subscriber failed")

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that removes it."""

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe
