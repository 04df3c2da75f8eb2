"""进度事件（Observer 模式）

编译流水线通过 EventEmitter 发布进度事件，CLI / 测试订阅回调即可，
回调内部异常只记录日志，不影响流水线本身。

用法:
    emitter = EventEmitter()
    emitter.on(WRITING_APPLICATION, lambda app: print(app.name))
    emitter.emit(WRITING_APPLICATION, app)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

# ---- 事件名 ----
MAKING = "making"
MADE = "made"
COMPILING_CLASS = "compilingClass"
COMPILED_CLASS = "compiledClass"
SAVE_DATABASE = "saveDatabase"
WRITING_APPLICATIONS = "writingApplications"
WRITING_APPLICATION = "writingApplication"
WRITTEN_APPLICATION = "writtenApplication"
WRITTEN_APPLICATIONS = "writtenApplications"
AFTER_WRITE_APPLICATION = "afterWriteApplication"

Listener = Callable[..., Any]


class EventEmitter:
    """简单的同步事件分发器"""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(*args)
            except (ValueError, RuntimeError, OSError, TypeError, KeyError):
                logger.exception("事件回调执行失败: %s", event)

    def forward(self, event: str, target: EventEmitter) -> None:
        """把本对象的某个事件转发给另一个分发器"""
        self.on(event, lambda *args: target.emit(event, *args))
