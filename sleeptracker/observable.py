"""
可观察状态容器
Observable: 持有一个值，set 时同步通知订阅者；map 派生只读投影。
Mailbox: 单槽一次性事件，消费方处理后必须 acknowledge，重新订阅不会重放已确认的事件。
All notifications happen on the thread that calls set (the event loop for the controller).
"""
from __future__ import annotations

from typing import Any, Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")

Unsubscribe = Callable[[], None]


class Observable(Generic[T]):
    def __init__(self, value: T = None):
        self._value = value
        self._observers: List[Callable[[T], Any]] = []
        self._detach: Optional[Unsubscribe] = None

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T):
        self._value = value
        for cb in list(self._observers):
            cb(value)

    def subscribe(self, callback: Callable[[T], Any], replay: bool = True) -> Unsubscribe:
        """注册回调；replay=True 时立即以当前值回调一次。返回取消订阅函数。"""
        self._observers.append(callback)
        if replay:
            callback(self._value)

        def _unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return _unsubscribe

    def map(self, fn: Callable[[T], R]) -> "Observable[R]":
        derived: Observable[R] = Observable(fn(self._value))
        derived._detach = self.subscribe(lambda v: derived.set(fn(v)), replay=False)
        return derived

    def dispose(self):
        """Detach from the source (for mapped values) and drop all observers."""
        if self._detach is not None:
            self._detach()
            self._detach = None
        self._observers.clear()


class Mailbox(Generic[T]):
    """Single-slot pending event. `None` means nothing pending."""

    def __init__(self):
        self._slot: Observable[Optional[T]] = Observable(None)

    @property
    def pending(self) -> Optional[T]:
        return self._slot.value

    def post(self, event: T):
        self._slot.set(event)

    def acknowledge(self):
        if self._slot.value is not None:
            self._slot.set(None)

    def subscribe(self, callback: Callable[[Optional[T]], Any], replay: bool = True) -> Unsubscribe:
        return self._slot.subscribe(callback, replay=replay)

    def dispose(self):
        self._slot.dispose()
