"""This module exports fixtures shared by all tests."""

from pytest import fixture

from quickdef import events


@fixture(autouse=True)
def isolated_listeners():
    """Restore the event listeners after each test."""
    saved = {topic: fns.copy() for topic, fns in events.listeners.items()}
    yield
    events.listeners.clear()
    events.listeners.update(saved)
