from __future__ import annotations

from itertools import count
import os
import re
import threading

from .registry import JobRegistry

from typing import Optional, Tuple


DocumentId = int
Region = Tuple[int, int]

WORD_RE = re.compile(r'^([-\w]+)')
_document_ids = count(start=1)
_id_lock = threading.Lock()


def next_document_id() -> DocumentId:
    with _id_lock:
        return next(_document_ids)


# Checkers report positions as line/column pairs while diagnostics carry
# offsets. `TextSnapshot` is just enough code to map between both for the
# text we actually sent to the checker.
class TextSnapshot:
    def __init__(self, code=''):
        self._code = code
        self._newlines = newlines = [0]
        last = -1

        while True:
            last = code.find('\n', last + 1)

            if last == -1:
                break

            newlines.append(last + 1)

        newlines.append(len(code))

    @property
    def text(self):
        # type: () -> str
        return self._code

    def full_line(self, line):
        # type: (int) -> Region
        """Return the start/end character positions for the given line."""
        start = self._newlines[line]
        end = self._newlines[min(line + 1, len(self._newlines) - 1)]
        return start, end

    def line_region(self, line):
        # type: (int) -> Region
        """Return the line region without the possible trailing newline char."""
        a, b = self.full_line(line)
        t = self.substr((a, b)).rstrip('\n')
        return a, a + len(t)

    def select_line(self, line):
        # type: (int) -> str
        """Return code for the given line."""
        start, end = self.full_line(line)
        return self._code[start:end]

    def max_lines(self):
        # type: () -> int
        return len(self._newlines) - 2

    def size(self):
        # type: () -> int
        return len(self._code)

    def substr(self, region):
        # type: (Region) -> str
        a, b = region
        return self._code[min(a, b):max(a, b)]

    def diag_region(self, line, col=None, word_re=WORD_RE):
        # type: (int, Optional[int], re.Pattern) -> Region
        """Compute `(start, end)` offsets for a 0-based line and column.

        Without a column the region spans the line without its leading
        and trailing whitespace.  With a column we select the word starting
        there (see `word_re`) or at least one character.  Out of range
        lines and columns are clamped into the snapshot.  The region is
        never empty unless it sits at the very end of the text.
        """
        line = max(min(line, self.max_lines()), 0)
        a, b = self.line_region(line)
        text = self._code[a:b]

        if col is None:
            stripped = text.lstrip()
            start = a + len(text) - len(stripped)
            end = a + len(text.rstrip())
            if end <= start:
                start, end = a, b
        else:
            col = max(min(col, len(text)), 0)
            match = word_re.search(text[col:]) if word_re else None
            length = len(match.group()) if match else 1
            start, end = a + col, a + col + length

        return start, min(self.size(), max(start + 1, end))


class Document:
    """A text buffer that can be checked.

    Holds the current text, an optional file name and a registry of the
    checker jobs running for it.  Jobs work on a `snapshot()` so editing
    the document while a job runs does not affect it.
    """

    def __init__(self, text='', file_name=None, id=None):
        # type: (str, Optional[str], Optional[DocumentId]) -> None
        self.id = next_document_id() if id is None else id
        self.file_name = file_name
        self.jobs = JobRegistry()
        self._text = text
        self._closed = False
        self._lock = threading.Lock()

    def __repr__(self):
        return "Document({}, {!r})".format(self.id, self.file_name)

    @property
    def text(self):
        # type: () -> str
        return self._text

    def set_text(self, text):
        # type: (str) -> None
        with self._lock:
            self._text = text

    def snapshot(self):
        # type: () -> TextSnapshot
        with self._lock:
            return TextSnapshot(self._text)

    @property
    def base_name(self):
        # type: () -> Optional[str]
        return os.path.basename(self.file_name) if self.file_name else None

    def is_valid(self):
        # type: () -> bool
        return not self._closed

    def close(self):
        # type: () -> None
        self._closed = True
