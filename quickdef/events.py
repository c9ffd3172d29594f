"""Minimal pub/sub for observing the life of checker jobs.

Payloads are passed as keyword arguments:

    lint_start          document_id, checker_name
    lint_result         document_id, checker_name, diagnostics
    lint_end            document_id, checker_name
    job_cancelled       document_id, checker_name, friendly_terminated
    checker_failed      document_id, checker_name
    checker_registered  checker_name
    settings_changed    settings

`broadcast` is called from watcher threads, listeners must not block.
"""
from __future__ import annotations
from collections import defaultdict
import logging
import threading

from typing import Callable, TypeVar


LINT_START = 'lint_start'
LINT_RESULT = 'lint_result'
LINT_END = 'lint_end'
JOB_CANCELLED = 'job_cancelled'
CHECKER_FAILED = 'checker_failed'
CHECKER_REGISTERED = 'checker_registered'
SETTINGS_CHANGED = 'settings_changed'


Handler = Callable[..., None]
F = TypeVar('F', bound=Handler)
map_fn_to_topic: dict[Handler, str] = {}
listeners: dict[str, set[Handler]] = defaultdict(set)
_lock = threading.RLock()

logger = logging.getLogger(__name__)


def subscribe(topic: str, fn: Handler) -> None:
    with _lock:
        listeners[topic].add(fn)


def unsubscribe(topic_or_fn: str | Handler, fn: Handler | None = None) -> None:
    """Remove a listener, either `(topic, fn)` or a function decorated with `on`."""
    with _lock:
        if isinstance(topic_or_fn, str):
            if not fn:
                raise ValueError("second argument must be given")
            topic = topic_or_fn
        else:
            fn = topic_or_fn
            topic = map_fn_to_topic.pop(fn, None)  # type: ignore[assignment]
            if topic is None:
                return

        listeners[topic].discard(fn)


def broadcast(topic: str, payload: dict = {}) -> None:
    with _lock:
        receivers = list(listeners.get(topic, ()))

    for fn in receivers:
        try:
            fn(**payload)
        except Exception:
            logger.exception("Listener {!r} for '{}' failed".format(fn, topic))


def on(topic: str) -> Callable[[F], F]:
    def inner(fn):
        with _lock:
            subscribe(topic, fn)
            map_fn_to_topic[fn] = topic
        return fn
    return inner


off = unsubscribe
