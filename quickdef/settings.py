from __future__ import annotations

from functools import lru_cache
import json
import logging
import os
import sys

from . import events
from jsonschema import validate, FormatChecker, ValidationError

from typing import Any, Iterable, Mapping, Tuple


logger = logging.getLogger(__name__)

SCHEMA_FILE = os.path.join(os.path.dirname(__file__), 'resources', 'settings-schema.json')
DEFAULT_SETTINGS = {
    'debug': False,
    'kill_old_processes': True,
    'paths': {},
    'checkers': {},
}


def platform() -> str:
    if sys.platform.startswith('win'):
        return 'windows'
    if sys.platform == 'darwin':
        return 'osx'
    return 'linux'


class Settings:
    """This class provides access to and management of the settings."""

    def __init__(self, settings: Mapping[str, Any] | None = None) -> None:
        self._previous_state: dict[str, Any] = {}
        self._current_state: dict[str, Any] = dict(DEFAULT_SETTINGS)
        self._change_count = 0
        if settings:
            self.update(settings)

    def __repr__(self):
        return "Settings({!r})".format(self._current_state)

    def has(self, name: str) -> bool:
        """Return whether the given setting exists."""
        return name in self._current_state

    def get(self, name: str, default: Any = None) -> Any:
        """Return a setting, defaulting to default if not found."""
        return self._current_state.get(name, default)

    def has_changed(self, name: str) -> bool:
        current_value = self.get(name)
        try:
            old_value = self._previous_state[name]
        except KeyError:
            return False
        else:
            return (old_value != current_value)

    def change_count(self) -> int:
        return self._change_count

    def checker_settings(self, checker_name: str) -> Mapping[str, Any]:
        return self.get('checkers', {}).get(checker_name, {})

    def paths(self) -> Tuple[str, ...]:
        """Return the additional PATH entries for the current platform."""
        return tuple(self.get('paths', {}).get(platform(), []))

    def update(self, settings: Mapping[str, Any], name: str = '<settings>') -> bool:
        """Validate and apply settings on top of the defaults.

        Invalid settings are logged and ignored; the previous state is
        kept in that case.  Return whether the settings were applied.
        """
        if not validate_settings([(name, settings)]):
            return False

        self._previous_state = self._current_state.copy()
        self._current_state = {**DEFAULT_SETTINGS, **settings}
        self._change_count += 1
        events.broadcast(events.SETTINGS_CHANGED, {'settings': self})
        return True

    def load(self, filename: str) -> bool:
        """Load the settings from a json file."""
        try:
            with open(filename, 'r', encoding='utf8') as fh:
                settings = json.load(fh)
        except (IOError, ValueError) as err:
            logger.warning("Could not read settings from '{}': {}".format(filename, err))
            return False

        return self.update(settings, name=filename)


@lru_cache(maxsize=1)
def load_schema() -> dict:
    with open(SCHEMA_FILE, 'r', encoding='utf8') as fh:
        return json.load(fh)


def validate_settings(filename_settings_pairs: Iterable[Tuple[str, Any]]) -> bool:
    schema = load_schema()
    good = True

    for name, settings in filename_settings_pairs:
        if settings:
            try:
                validate(settings, schema, format_checker=FormatChecker())
            except ValidationError as error:
                good = False
                path_to_err = (' > '.join(
                    repr(part)
                    for part in error.path
                    if not isinstance(part, int)  # drop array indices
                ) + ': ') if error.path else ''

                logger.warning(
                    "Invalid settings in '{}':\n"
                    '{}{}'.format(name, path_to_err, error.message)
                )

    return good
