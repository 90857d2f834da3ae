import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

BEFORE_UPLOAD_FILE = "before_upload_file"
AFTER_UPLOAD_FILE = "after_upload_file"
AFTER_INSERT_ATTACHMENT = "after_insert_attachment"

UPLOAD_EVENTS = (BEFORE_UPLOAD_FILE, AFTER_UPLOAD_FILE, AFTER_INSERT_ATTACHMENT)


class HookRegistry:
    """Handlers called at fixed points of the upload lifecycle."""

    def __init__(self):
        self._handlers: Dict[str, List[Callable[[Any], None]]] = {event: [] for event in UPLOAD_EVENTS}

    def register(self, event: str, handler: Callable[[Any], None]) -> None:
        if event not in self._handlers:
            raise ValueError(f"Unknown upload event: {event}")
        self._handlers[event].append(handler)

    def dispatch(self, event: str, payload: Any) -> None:
        for handler in self._handlers[event]:
            logger.debug(f"Dispatching {event} to {getattr(handler, '__name__', handler)}")
            handler(payload)


hooks = HookRegistry()
