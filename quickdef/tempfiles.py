"""Temporary directories holding the document snapshot for file based checkers."""
from __future__ import annotations

import logging
import os
import shutil
import tempfile

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .document import Document


logger = logging.getLogger(__name__)

TEMP_DIR_PREFIX = 'quickdef-'


def create_temp_dir() -> str:
    return tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX)


def write_file(path: str, data: bytes) -> None:
    with open(path, 'wb') as fh:
        fh.write(data)


def delete_recursive(path: Optional[str]) -> bool:
    """Remove path and everything below it.  Never raises.

    Return whether the directory is gone afterwards.
    """
    if not path:
        return True

    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        logger.info("Temp dir '{}' already removed.".format(path))
    except OSError as err:
        logger.warning("Could not remove temp dir '{}': {}".format(path, err))
        return False
    return True


def temp_file_name(document: Document, suffix: str = '') -> str:
    """Return a file name for the snapshot of document.

    We reuse the base name of the document so that checkers which
    derive the language or module name from the file name keep working.
    """
    base_name = document.base_name
    if base_name:
        return base_name

    if suffix and not suffix.startswith('.'):
        suffix = '.' + suffix
    return '{}{}{}'.format(TEMP_DIR_PREFIX, document.id, suffix)


def make_temp_file(document: Document, code: str, suffix: str = '') -> tuple[str, str]:
    """Write code into a fresh temp dir and return `(temp_dir, temp_file)`.

    If writing fails, the directory is removed again before we re-raise.
    """
    temp_dir = create_temp_dir()
    temp_file = os.path.join(temp_dir, temp_file_name(document, suffix))
    try:
        write_file(temp_file, bytes(code, 'UTF-8'))
    except Exception:
        delete_recursive(temp_dir)
        raise
    return temp_dir, temp_file
