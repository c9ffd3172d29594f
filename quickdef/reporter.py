"""Deliver the final diagnostics of a job to the host."""
from __future__ import annotations

import logging

from . import events, util

from typing import TYPE_CHECKING, Callable, List

if TYPE_CHECKING:
    from .checker import Diagnostic
    from .document import Document

    ReportFn = Callable[[Document, List[Diagnostic]], None]


logger = logging.getLogger(__name__)


def report(
    report_fn: ReportFn,
    document: Document,
    checker_name: str,
    diagnostics: List[Diagnostic],
) -> None:
    """Call `report_fn` exactly once with the ordered diagnostics.

    The contract for a checker is that it reports `[diagnostics]` or an
    empty list `[]` if the document is clean.  There are no retries; what
    happens after delivery is up to the host.
    """
    logger.info(
        "{} reports {} diagnostic{} for '{}'".format(
            checker_name, len(diagnostics), '' if len(diagnostics) == 1 else 's',
            util.short_canonical_filename(document)
        )
    )
    try:
        report_fn(document, diagnostics)
    except Exception:
        logger.exception(
            "Reporting results of {} for '{}' failed".format(
                checker_name, util.short_canonical_filename(document))
        )

    events.broadcast(events.LINT_RESULT, {
        'document_id': document.id,
        'checker_name': checker_name,
        'diagnostics': diagnostics,
    })
