from __future__ import annotations

from collections import ChainMap
from dataclasses import dataclass, field
from functools import partial
from itertools import count
import logging
import os
import subprocess
import threading
import time

from . import events, reporter, tempfiles
from .checker import (
    CheckerConfig, CheckerSettings, Diagnostic, PermanentError, TransientError,
    get_context
)
from .const import FILE
from .parser import filter_errors, parse_output
from .registry import JobKey
from . import util

from typing import TYPE_CHECKING, Callable, Dict, List, Optional
from typing_extensions import TypeAlias

if TYPE_CHECKING:
    from .document import Document, TextSnapshot
    from .process import ProcessHandle, ProcessRunner, popen_output
    from .settings import Settings


ReportFn: TypeAlias = "Callable[[Document, List[Diagnostic]], None]"
LintResult: TypeAlias = "List[Diagnostic]"


logger = logging.getLogger(__name__)

task_count = count(start=1)
counter_lock = threading.Lock()


@dataclass(eq=False)
class Job:
    """One run of a checker against a document snapshot."""

    key: JobKey
    checker: CheckerConfig
    document: Document
    snapshot: TextSnapshot
    report_fn: ReportFn
    settings: CheckerSettings
    name: str = ''
    process: Optional[ProcessHandle] = None
    temp_dir: Optional[str] = None
    output: Optional[popen_output] = None
    done: bool = False
    superseded: bool = False
    started_at: float = field(default_factory=time.perf_counter)
    _cleaned_up: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __repr__(self):
        return "Job({}, {}, {!r})".format(self.name, self.key.checker_name, self.process)

    @property
    def friendly_terminated(self) -> bool:
        return bool(self.process and self.process.friendly_terminated)

    def is_running(self) -> bool:
        return not self.done

    def is_obsolete(self) -> bool:
        return (
            self.superseded
            or self.friendly_terminated
            or not self.document.jobs.is_current(self.key, self)
        )

    def terminate(self) -> None:
        if self.process is not None and not self.done:
            self.process.terminate()

    def cleanup(self) -> None:
        """Release the output and remove the temp dir.  Runs only once.

        Every step runs even if an earlier one fails.
        """
        with self._lock:
            if self._cleaned_up:
                return
            self._cleaned_up = True

        try:
            self.output = None
        except Exception:
            logger.warning('Releasing the output of {!r} failed'.format(self), exc_info=True)

        if self.temp_dir:
            try:
                tempfiles.delete_recursive(self.temp_dir)
            except Exception:
                logger.warning(
                    'Removing the temp dir of {!r} failed'.format(self), exc_info=True)


def launch(
    document: Document,
    checker: CheckerConfig,
    report_fn: ReportFn,
    settings: Settings,
    runner: ProcessRunner,
    folder: Optional[str] = None,
) -> Job:
    """Start a job for document and checker, superseding a running one.

    Raises `PreflightError` if the checker does not want to run, nothing
    has been created in that case.  Raises `PermanentError` if the command
    cannot be built or the process cannot be started.
    """
    checker.run_preflight(document)

    key = JobKey(document.id, checker.name)
    snapshot = document.snapshot()
    context = get_context(document, folder)
    checker_settings = checker.get_settings(settings.checker_settings(checker.name), context)
    paths = settings.paths()

    job = Job(
        key=key,
        checker=checker,
        document=document,
        snapshot=snapshot,
        report_fn=report_fn,
        settings=checker_settings,
        name=make_good_task_name(checker, document),
    )

    try:
        if checker.input_mode == FILE:
            job.temp_dir, temp_file = tempfiles.make_temp_file(
                document, snapshot.text, checker.get_tempfile_suffix(document))
            context['temp_dir'] = job.temp_dir
            context['temp_file'] = temp_file

        cmd = checker.build_cmd(checker_settings, context, paths)
        cwd = checker.get_working_dir(checker_settings, context)
        env = checker.get_environment(checker_settings, paths)
    except PermanentError as err:
        job.cleanup()
        checker.logger.warning(str(err))
        # The previous job must not report anymore.
        previous = document.jobs.set(key, None)
        if previous is not None and previous.is_running():
            supersede(previous, kill=settings.get('kill_old_processes', True))
        raise
    except Exception:
        job.cleanup()
        raise

    previous = document.jobs.get(key)
    if previous is not None and previous.is_running():
        supersede(previous, kill=settings.get('kill_old_processes', True))

    uses_stdin = checker.uses_stdin
    try:
        job.process = runner.start(
            cmd, uses_stdin=uses_stdin, cwd=cwd, env=env,
            error_stream=checker.error_stream, name=job.name
        )
    except Exception as err:
        checker.logger.error(make_nice_log_message(
            '  Execution failed\n\n  {}'.format(str(err)),
            cmd, uses_stdin, cwd, document, modified_env(env)))
        # The previous job must not report anymore.
        document.jobs.set(key, None)
        job.done = True
        job.cleanup()
        raise PermanentError("popen constructor failed") from err

    if checker.logger.isEnabledFor(logging.INFO):
        checker.logger.info(make_nice_log_message(
            'Running ...', cmd, uses_stdin, cwd, document,
            modified_env(env)))

    replaced = document.jobs.set(key, job)
    if replaced is not None and replaced is not previous and replaced.is_running():
        supersede(replaced, kill=settings.get('kill_old_processes', True))

    events.broadcast(events.LINT_START, {
        'document_id': document.id, 'checker_name': checker.name
    })
    job.process.on_exit(partial(on_job_exit, job))

    if uses_stdin:
        job.process.write(snapshot.text.encode('utf8'))
        job.process.close_input()

    return job


def supersede(job: Job, kill: bool = True) -> None:
    job.superseded = True
    if kill:
        logger.info('Friendly terminate: {!r}'.format(job.process))
        job.terminate()
    else:
        logger.info('Superseding {!r} without terminating it'.format(job))


def on_job_exit(job: Job, returncode: Optional[int], output: popen_output) -> None:
    """Handle the exit of the process of job.  Runs exactly once per job.

    We report only if job is still the current one for its key and was
    never superseded, not even while its successor was starting.  The
    document may already be closed here, so we only touch its id and its
    registry.
    """
    job.output = output
    try:
        if job.is_obsolete():
            logger.info(
                "{!r} for '{}' is obsolete, discarding results"
                .format(job, util.canonical_filename(job.document))
            )
            events.broadcast(events.JOB_CANCELLED, {
                'document_id': job.key.document_id,
                'checker_name': job.key.checker_name,
                'friendly_terminated': job.friendly_terminated,
            })
            return

        try:
            diagnostics = collect_diagnostics(job, output)
        except TransientError:
            return  # ABORT

        reporter.report(job.report_fn, job.document, job.checker.name, diagnostics)

    finally:
        job.done = True
        job.cleanup()
        remember_runtime(job, returncode)
        events.broadcast(events.LINT_END, {
            'document_id': job.key.document_id,
            'checker_name': job.key.checker_name,
        })


def collect_diagnostics(job: Job, output: popen_output) -> LintResult:
    checker = job.checker
    try:
        diagnostics = parse_output(output, checker, job.document, job.snapshot)
        return filter_errors(diagnostics, job.settings.get('filter_errors'), checker.logger)
    except TransientError:
        raise
    except Exception:
        checker.logger.exception('Unhandled exception:\n')
        events.broadcast(events.CHECKER_FAILED, {
            'document_id': job.key.document_id,
            'checker_name': checker.name,
        })
        return []  # Empty list here to clear old errors


def make_good_task_name(checker: CheckerConfig, document: Document) -> str:
    with counter_lock:
        task_number = next(task_count)

    return 'LintTask|{}|{}|{}|{}'.format(
        task_number,
        checker.name,
        util.short_canonical_filename(document),
        document.id
    )


def remember_runtime(job: Job, returncode: Optional[int]) -> None:
    runtime = time.perf_counter() - job.started_at
    logger.info(
        "Linting '{}' with {} took {:.2f}s (exit status {})"
        .format(util.short_canonical_filename(job.document), job.checker.name, runtime, returncode)
    )


RUNNING_TEMPLATE = """{headline}

  {cwd}  (working dir)
  {prompt}{pipe} {cmd}
"""

PIPE_TEMPLATE = ' type {} |' if os.name == 'nt' else ' cat {} |'
ENV_TEMPLATE = """
  Modified environment:

  {env}
"""


def modified_env(env) -> Optional[Dict[str, str]]:
    """Return only the variables we add on top of `os.environ`."""
    maps = getattr(env, 'maps', None)
    if not maps:
        return None
    return dict(ChainMap(*maps[0:-1]))


def make_nice_log_message(
    headline: str,
    cmd: List[str],
    is_stdin: bool,
    cwd: Optional[str],
    document: Document,
    env: Optional[Dict[str, str]] = None,
) -> str:
    import pprint
    import textwrap

    filename = document.file_name
    if filename and cwd:
        rel_filename = (
            os.path.relpath(filename, cwd)
            if os.path.commonprefix([filename, cwd])
            else filename
        )
    elif filename:
        rel_filename = filename
    else:
        rel_filename = '<untitled {}>'.format(document.id)

    on_win = os.name == 'nt'
    exec_msg = RUNNING_TEMPLATE.format(
        headline=headline,
        cwd=cwd or os.getcwd(),
        prompt='>' if on_win else '$',
        pipe=PIPE_TEMPLATE.format(rel_filename) if is_stdin else '',
        cmd=subprocess.list2cmdline(cmd) if on_win else ' '.join(cmd)
    )

    env_msg = ENV_TEMPLATE.format(
        env=textwrap.indent(
            pprint.pformat(env, indent=2),
            '  ',
            predicate=lambda line: not line.startswith('{')
        )
    ) if env else ''

    return exec_msg + env_msg
