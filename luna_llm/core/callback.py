"""Lifecycle hooks for generation and tool execution."""

import logging
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class Callback:
    """Base class for lifecycle hooks. Override only the hooks you need."""

    def on_llm_start(self, meta: Dict[str, Any]) -> None:
        pass

    def on_llm_end(self, meta: Dict[str, Any]) -> None:
        pass

    def on_text_generated(self, output: str, meta: Dict[str, Any]) -> None:
        pass

    def on_tool_call_start(self, name: str, args: Any, meta: Dict[str, Any]) -> None:
        pass

    def on_tool_call_end(self, name: str, result: Any, meta: Dict[str, Any]) -> None:
        pass

    def on_meta(self, meta: Dict[str, Any]) -> None:
        pass

    def on_error(self, error: BaseException, meta: Dict[str, Any]) -> None:
        pass


class CallbackManager(Callback):
    """Dispatches every hook to an ordered list of callbacks."""

    def __init__(self, callbacks: Optional[Iterable[Callback]] = None):
        self.callbacks: List[Callback] = list(callbacks or [])

    def add_callback(self, callback: Callback) -> None:
        self.callbacks.append(callback)

    def remove_callback(self, callback: Callback) -> None:
        self.callbacks = [cb for cb in self.callbacks if cb is not callback]

    def on_llm_start(self, meta):
        for callback in self.callbacks:
            callback.on_llm_start(meta)

    def on_llm_end(self, meta):
        for callback in self.callbacks:
            callback.on_llm_end(meta)

    def on_text_generated(self, output, meta):
        for callback in self.callbacks:
            callback.on_text_generated(output, meta)

    def on_tool_call_start(self, name, args, meta):
        for callback in self.callbacks:
            callback.on_tool_call_start(name, args, meta)

    def on_tool_call_end(self, name, result, meta):
        for callback in self.callbacks:
            callback.on_tool_call_end(name, result, meta)

    def on_meta(self, meta):
        for callback in self.callbacks:
            callback.on_meta(meta)

    def on_error(self, error, meta):
        for callback in self.callbacks:
            callback.on_error(error, meta)


def as_callback(callback: Optional[Callback]) -> Callback:
    """Return ``callback`` or a no-op callback so call sites never branch on ``None``."""
    return callback if callback is not None else _NOOP


_NOOP = Callback()
