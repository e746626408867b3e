from .async_utils import cancel_task, guarded_call, now_iso, now_ms, wait_with_stop
from .logging import log_event, sanitize_text, sanitize_value

__all__ = [
    "cancel_task",
    "guarded_call",
    "log_event",
    "now_iso",
    "now_ms",
    "sanitize_text",
    "sanitize_value",
    "wait_with_stop",
]
