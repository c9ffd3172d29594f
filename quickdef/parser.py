"""Turn the raw output of a checker into diagnostics."""
from __future__ import annotations

import logging
import re
import textwrap

from .checker import CheckerConfig, Diagnostic, LintMatch, PermanentError

from typing import TYPE_CHECKING, Iterator, List, Optional, Union

if TYPE_CHECKING:
    from .document import Document, TextSnapshot
    from .process import popen_output


logger = logging.getLogger(__name__)


def parse_output(
    proc: Union[str, popen_output],
    checker: CheckerConfig,
    document: Document,
    snapshot: TextSnapshot,
) -> List[Diagnostic]:
    """Return the diagnostics found in the output, in order of appearance."""
    output = proc
    stdout = getattr(proc, 'stdout', None)
    stderr = getattr(proc, 'stderr', None)
    # Split output, but only if both streams are captured, and if
    # `on_stderr` is defined.
    if stdout is not None and stderr is not None and callable(checker.on_stderr):
        output = stdout
        if stderr.strip():
            checker.on_stderr(stderr)

    return list(parse_output_via_regex(str(output), checker, document, snapshot))


def parse_output_via_regex(
    output: str,
    checker: CheckerConfig,
    document: Document,
    snapshot: TextSnapshot,
) -> Iterator[Diagnostic]:
    clogger = checker.logger
    if not output:
        clogger.info('{}: no output'.format(checker.name))
        return

    if clogger.isEnabledFor(logging.INFO):
        clogger.info('{}: output:\n{}'.format(
            checker.name, textwrap.indent(output.strip(), '  ')))

    extract = checker.extractor
    for m in find_errors(output, checker):
        m.snapshot = snapshot
        m.checker = checker
        candidate = extract(m, document)
        if not candidate:
            continue

        diagnostic = make_diagnostic(candidate)
        if diagnostic is None:
            clogger.info(
                '{}: dropping match without severity: {!r}'.format(checker.name, m))
            continue
        yield diagnostic


def make_diagnostic(candidate) -> Optional[Diagnostic]:
    """Convert an extraction result into a `Diagnostic`.

    A candidate without a severity is dropped and we return `None`.
    """
    if isinstance(candidate, Diagnostic):
        return candidate if candidate.severity else None

    document, start, end, severity, message = candidate
    if severity is None:
        return None
    return Diagnostic(document, start, end, severity, message)


def find_errors(output: str, checker: CheckerConfig) -> Iterator[LintMatch]:
    """
    Match the checker's regex against the output with this generator.

    If multiline is True, split_match is called for each non-overlapping
    match of the regex. If False, split_match is called for each line
    in output.
    """
    regex = checker.regex
    if not isinstance(regex, re.Pattern):
        raise PermanentError("{}: regex not compiled".format(checker.name))

    if checker.multiline:
        matches = list(regex.finditer(output))
        if not matches:
            checker.logger.info(
                '{}: No matches for regex: {}'.format(checker.name, regex.pattern))
            return

        for match in matches:
            yield split_match(match, checker)
    else:
        for line in output.splitlines():
            match = regex.match(line.rstrip())
            if match:
                yield split_match(match, checker)
            else:
                checker.logger.info(
                    "{}: No match for line: '{}'".format(checker.name, line))


def split_match(match: re.Match, checker: CheckerConfig) -> LintMatch:
    """Convert the regex match to a `LintMatch`

    We cast `line` and `col` to zero-based int's if provided.  A `col`
    which is not a number, e.g. a run of spaces or `^^^` markers, counts
    by its length.
    """
    error = LintMatch(match.groupdict())
    error.match = match
    line_base, col_base = checker.line_col_base
    error['line'] = apply_base(error.get('line'), line_base)
    error['end_line'] = apply_base(error.get('end_line'), line_base)
    error['end_col'] = apply_base(error.get('end_col'), col_base)

    col = error.get('col')
    if col and not col.isdigit():
        error['col'] = len(col)
    else:
        error['col'] = apply_base(col, col_base)

    return error


def apply_base(val: Union[int, str, None], base: int) -> Optional[int]:
    if val is None:
        return None
    try:
        v = int(val)
    except ValueError:
        return None
    else:
        return v - base


def filter_errors(
    diagnostics: List[Diagnostic],
    filter_patterns,
    clogger: logging.Logger = logger,
) -> List[Diagnostic]:
    """Drop all diagnostics matching one of the user provided patterns.

    Patterns are case-insensitive regexes searched in
    `'<severity>: <message>'`.
    """
    filter_patterns = filter_patterns or []
    if isinstance(filter_patterns, str):
        filter_patterns = [filter_patterns]

    filters = []
    try:
        for pattern in filter_patterns:
            try:
                filters.append(re.compile(pattern, re.I))
            except re.error as err:
                clogger.error(
                    "'{}' in 'filter_errors' is not a valid "
                    "regex pattern: '{}'.".format(pattern, err)
                )

    except TypeError:
        clogger.error(
            "'filter_errors' must be set to a string or a list of strings.\n"
            "Got '{}' instead".format(filter_patterns))

    return [
        diagnostic
        for diagnostic in diagnostics
        if not any(
            pattern.search('{}: {}'.format(diagnostic.severity, diagnostic.message))
            for pattern in filters
        )
    ]
