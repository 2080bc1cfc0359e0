# -*- coding: utf-8 -*-
"""
Handler registration table.
Maps ``(module_id, handler_name, method)`` to the function serving a module endpoint.
Each module package fills the table from its own ``register()`` at startup.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from flask import current_app

Handler = Callable[[Dict[str, str]], Any]
HandlerKey = Tuple[str, str, str]

ANY_METHOD = "*"


class HandlerRegistry:
    def __init__(self):
        self._handlers: Dict[HandlerKey, Handler] = {}

    def add(self, module_id: str, handler_name: str, method: str, func: Handler) -> None:
        key = (module_id, handler_name, method.upper())
        if key in self._handlers:
            raise ValueError(f"Handler already registered for {key}")
        self._handlers[key] = func

    def get(self, module_id: str, handler_name: str, method: str) -> Optional[Handler]:
        func = self._handlers.get((module_id, handler_name, method.upper()))
        if func is None:
            # a handler registered for any method serves every verb of its endpoint
            func = self._handlers.get((module_id, handler_name, ANY_METHOD))
        return func

    def missing_for(self, registry) -> Iterator[HandlerKey]:
        """Yield enabled endpoints that have no registered implementation."""

        for entry in registry.get_all_api_endpoints():
            endpoint = entry.endpoint
            if self.get(entry.module_id, endpoint.handler, endpoint.method) is None:
                yield entry.module_id, endpoint.handler, endpoint.method

    def __contains__(self, key) -> bool:
        module_id, handler_name, method = key
        return self.get(module_id, handler_name, method) is not None

    def __len__(self) -> int:
        return len(self._handlers)


def get_handler_registry() -> HandlerRegistry:
    return current_app.extensions["module_handlers"]
