# flake8: noqa
"""API for checker authors."""

VERSION = 1

from .const import ERROR, WARNING, NOTE, PIPE, FILE
from .util import STREAM_STDOUT, STREAM_STDERR, STREAM_BOTH

from .checker import (
    CheckerConfig,
    Diagnostic,
    LintMatch,
    CheckerError,
    ConfigurationError,
    PermanentError,
    PreflightError,
    TransientError,
    default_extract,
)
from .document import Document, TextSnapshot
from .host import Host, register_checker
from .registry import JobKey, JobRegistry
from .settings import Settings
