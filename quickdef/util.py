"""This module provides general utility methods."""
from __future__ import annotations

from collections import ChainMap
from collections.abc import Mapping, Sequence
from functools import lru_cache
import locale
import logging
import os
import re
import shutil
import subprocess
import sys

from typing import TYPE_CHECKING, Iterable, MutableMapping, TypeVar, Union

if TYPE_CHECKING:
    from .document import Document

    T = TypeVar('T')


logger = logging.getLogger(__name__)


STREAM_STDOUT = 1
STREAM_STDERR = 2
STREAM_BOTH = STREAM_STDOUT + STREAM_STDERR
ANSI_COLOR_RE = re.compile(r'\033\[[0-9;]*m')
VARIABLE_RE = re.compile(r'(?<!\\)\$\{(?P<name>\w+)(?::(?P<placeholder>[^}]*))?\}')


def short_canonical_filename(document: Document) -> str:
    return (
        os.path.basename(document.file_name)
        if document.file_name
        else '<untitled {}>'.format(document.id)
    )


def canonical_filename(document: Document) -> str:
    return document.file_name or '<untitled {}>'.format(document.id)


def format_items(items: Iterable[str]) -> str:
    quoted = ["'{}'".format(item) for item in items]
    if len(quoted) < 2:
        return ''.join(quoted)
    return "{} and {}".format(', '.join(quoted[:-1]), quoted[-1])


# variable expansion


def expand_variables(value: str, variables: Mapping[str, str]) -> str:
    """Expand `${name}` and `${name:placeholder}` in value.

    Unknown names without a placeholder expand to the empty string.  A
    backslash escapes the dollar sign, t.i. `\\${name}` stays literally as
    `${name}`.
    """
    def replace(match):
        name, placeholder = match.group('name'), match.group('placeholder')
        try:
            return str(variables[name])
        except KeyError:
            return placeholder or ''

    return VARIABLE_RE.sub(replace, value).replace(r'\$', '$')


def substitute_variables(variables, value):
    # type: (Mapping, T) -> T
    if isinstance(value, str):
        value = expand_variables(value, variables)
        return os.path.expanduser(value)
    elif isinstance(value, Mapping):
        return {key: substitute_variables(variables, val)
                for key, val in value.items()}
    elif isinstance(value, Sequence):
        return [substitute_variables(variables, item)
                for item in value]
    else:
        return value


# file/directory/environment utils


@lru_cache(maxsize=1)  # print once every time the path changes
def debug_print_env(path: str) -> None:
    import textwrap
    logger.info('PATH:\n{}'.format(textwrap.indent(path.replace(os.pathsep, '\n'), '    ')))


def create_environment(paths: tuple[str, ...] = ()) -> MutableMapping[str, str]:
    """Return a dict with os.environ augmented with a better PATH."""
    return ChainMap({'PATH': get_augmented_path(paths)}, os.environ)


@lru_cache(maxsize=8)
def get_augmented_path(paths: tuple[str, ...] = ()) -> str:
    expanded = [os.path.expanduser(path) for path in paths]
    augmented_path = os.pathsep.join(expanded + [os.environ.get('PATH', '')])
    if logger.isEnabledFor(logging.INFO):
        debug_print_env(augmented_path)
    return augmented_path


def which(cmd: str, paths: tuple[str, ...] = ()) -> str | None:
    """Return the full path to an executable searching PATH."""
    return shutil.which(cmd, path=get_augmented_path(paths))


# popen utils


def process_popen_output(output: bytes | str | None) -> str:
    # bytes -> string   --> universal newlines
    output = decode(output).replace('\r\n', '\n').replace('\r', '\n')
    return ANSI_COLOR_RE.sub('', output)


def decode(bytes: bytes | str | None) -> str:
    """
    Decode and return a byte string using utf8, falling back to system's encoding if that fails.
    """
    if not bytes:
        return ''
    if isinstance(bytes, str):
        return bytes

    try:
        return bytes.decode('utf8')
    except UnicodeError:
        return bytes.decode(locale.getpreferredencoding(), errors='replace')


def create_startupinfo():
    if sys.platform == "win32":
        info = subprocess.STARTUPINFO()  # type: ignore[attr-defined]
        info.dwFlags |= subprocess.STARTF_USESTDHANDLES | subprocess.STARTF_USESHOWWINDOW  # type: ignore[attr-defined]
        info.wShowWindow = subprocess.SW_HIDE  # type: ignore[attr-defined]
        return info
    else:
        return None


def get_creationflags() -> int:
    if sys.platform == "win32":
        return subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]
    else:
        return 0


# misc utils


def ensure_list(value: Union[T, list[T]]) -> list[T]:
    return value if isinstance(value, list) else [value]
