"""Glue between a host framework and the registered checkers.

A host owns a set of checkers, the settings and a process runner.  The
host framework calls `Host.lint(document)` whenever it wants fresh
diagnostics, and `Host.close(document)` once the document is gone.
Results are delivered via the `report_fn` given to the host (or to a
single backend call).
"""
from __future__ import annotations

import logging
import threading

from . import backend, events, reporter, util
from .checker import CheckerConfig, PermanentError, PreflightError
from .process import ProcessRunner
from .settings import Settings

from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional

if TYPE_CHECKING:
    from .backend import Job, ReportFn
    from .document import Document

    Backend = Callable[..., Job]


logger = logging.getLogger(__name__)


class Host:
    def __init__(
        self,
        report_fn: ReportFn,
        settings: Optional[Settings] = None,
        runner: Optional[ProcessRunner] = None,
        folder: Optional[str] = None,
    ) -> None:
        self.report_fn = report_fn
        self.settings = settings if settings is not None else Settings()
        self.runner = runner if runner is not None else ProcessRunner()
        self.folder = folder
        self.backends: Dict[str, Backend] = {}
        self.documents: Dict[int, Document] = {}
        self._guards: Dict[int, threading.Lock] = {}
        self._lock = threading.Lock()

    def __repr__(self):
        return "Host({})".format(util.format_items(self.backends))

    def register(self, config: CheckerConfig) -> Backend:
        return register_checker(self, config)

    def lint(self, document: Document, only: Iterable[str] = ()) -> List[Job]:
        """Start a job for every enabled checker and return the started jobs.

        A checker whose pre-flight fails is skipped as if it was not
        registered at all.  A checker which cannot be started reports an
        empty result so that stale diagnostics vanish.
        """
        if not document.is_valid():
            logger.info("'{}' is closed. Skip linting.".format(util.canonical_filename(document)))
            return []

        only = set(only)
        jobs = []
        with self._guard_for(document):
            for name, fn in list(self.backends.items()):
                if only and name not in only:
                    continue

                if self.settings.checker_settings(name).get('disable'):
                    logger.info("{} is disabled.".format(name))
                    continue

                try:
                    jobs.append(fn(document))
                except PreflightError as err:
                    logger.info("{} skipped: {}".format(name, err))
                except PermanentError as err:
                    logger.warning("{} failed: {}".format(name, err))
                    events.broadcast(events.CHECKER_FAILED, {
                        'document_id': document.id,
                        'checker_name': name,
                    })
                    reporter.report(self.report_fn, document, name, [])

        if only and (unknown := only - set(self.backends)):
            logger.info(
                "Requested {} not registered.".format(util.format_items(sorted(unknown))))
        return jobs

    def _guard_for(self, document: Document) -> threading.Lock:
        with self._lock:
            self.documents[document.id] = document
            try:
                return self._guards[document.id]
            except KeyError:
                guard = self._guards[document.id] = threading.Lock()
                return guard

    def close(self, document: Document) -> None:
        """Forget document and terminate its jobs; they will not report."""
        document.close()
        with self._lock:
            self.documents.pop(document.id, None)
            self._guards.pop(document.id, None)
        for job in document.jobs.running():
            document.jobs.set(job.key, None)
            if job.is_running():
                backend.supersede(job)

    def shutdown(self) -> None:
        with self._lock:
            documents = list(self.documents.values())
        for document in documents:
            self.close(document)
        self.runner.shutdown(wait=False)


def register_checker(host: Host, config: CheckerConfig) -> Backend:
    """Register config at host and return its backend function.

    The backend has the signature `backend(document, report_fn=None)`
    and starts one job for document, superseding the current one.
    Without a `report_fn` the host's one is used.  Registering a checker
    with a name already taken replaces the previous one.
    """
    def checker_backend(document: Document, report_fn: Optional[ReportFn] = None) -> Job:
        return backend.launch(
            document, config, report_fn or host.report_fn,
            host.settings, host.runner, host.folder
        )

    checker_backend.__name__ = '{}_backend'.format(config.name.replace('-', '_'))
    checker_backend.checker = config  # type: ignore[attr-defined]

    if config.name in host.backends:
        logger.info("Replacing checker '{}'".format(config.name))
    host.backends[config.name] = checker_backend
    events.broadcast(events.CHECKER_REGISTERED, {'checker_name': config.name})
    return checker_backend
