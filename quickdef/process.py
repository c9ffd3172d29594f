"""Start external checkers and get notified when they exit."""
from __future__ import annotations

import logging
import subprocess
import threading

from . import util

from typing import Callable, Mapping, Optional, Sequence


logger = logging.getLogger(__name__)

ExitCallback = Callable[[Optional[int], 'popen_output'], None]


class popen_output(str):
    """Hybrid of a Popen process and its output.

    Small compatibility layer: It is both the decoded output
    as str and partially the Popen object.
    """

    stdout: Optional[str] = ''
    stderr: Optional[str] = ''
    combined_output = ''
    pid: Optional[int] = None
    returncode: Optional[int] = None

    def __new__(cls, proc, stdout, stderr):
        if stdout is not None:
            stdout = util.process_popen_output(stdout)
        if stderr is not None:
            stderr = util.process_popen_output(stderr)

        combined_output = ''.join(filter(None, [stdout, stderr]))

        rv = super().__new__(cls, combined_output)
        rv.combined_output = combined_output
        rv.stdout = stdout
        rv.stderr = stderr
        rv.pid = getattr(proc, 'pid', None)
        rv.returncode = getattr(proc, 'returncode', None)
        return rv


class ProcessHandle:
    """One started process.

    For processes reading from stdin, `write` collects the input and
    `close_input` hands it over to a watcher which feeds the process and
    captures its output.  All other processes are watched right away.
    Every process gets a watcher thread of its own, so a process which
    never exits cannot hold back the input or the exit of any other one.
    Exit callbacks run exactly once, on the watcher thread, or immediately
    if the process already finished when they are attached.
    """

    def __init__(self, proc, runner, name=None):
        # type: (subprocess.Popen, ProcessRunner, Optional[str]) -> None
        self.proc = proc
        self.pid = proc.pid
        self.name = name
        self.friendly_terminated = False
        self._runner = runner
        self._chunks = []  # type: list[bytes]
        self._input_closed = proc.stdin is None
        self._callbacks = []  # type: list[ExitCallback]
        self._result = None  # type: Optional[tuple[Optional[int], popen_output]]
        self._watcher = None  # type: Optional[threading.Thread]
        self._lock = threading.Lock()

    def __repr__(self):
        return '<pid {}>'.format(self.pid)

    @property
    def uses_stdin(self):
        # type: () -> bool
        return self.proc.stdin is not None

    def write(self, data):
        # type: (bytes) -> None
        with self._lock:
            if self._input_closed:
                raise ValueError('input of {!r} already closed'.format(self))
            self._chunks.append(data)

    def close_input(self):
        # type: () -> None
        with self._lock:
            if self._input_closed:
                return
            self._input_closed = True
        self._watch()

    def terminate(self):
        # type: () -> None
        """Request termination; best-effort and non-blocking."""
        self.friendly_terminated = True
        if self.proc.poll() is not None:
            return
        try:
            self.proc.terminate()
        except OSError as err:
            logger.info('Could not terminate {!r}: {}'.format(self, err))

    def poll(self):
        # type: () -> Optional[int]
        return self.proc.poll()

    def is_running(self):
        # type: () -> bool
        return self._result is None

    def on_exit(self, callback):
        # type: (ExitCallback) -> None
        with self._lock:
            result = self._result
            if result is None:
                self._callbacks.append(callback)
                return
        callback(*result)

    def join(self, timeout=None):
        # type: (Optional[float]) -> None
        if self._watcher is not None:
            self._watcher.join(timeout)

    def _watch(self):
        # type: () -> None
        # We 'name' our threads, for logging purposes.
        self._watcher = threading.Thread(
            target=self._wait_for_exit, name=self.name or 'quickdef-watcher', daemon=True)
        self._watcher.start()

    def _wait_for_exit(self):
        # type: () -> None
        try:
            returncode, output = self._communicate()
        except Exception:
            logger.exception('Communicating with {!r} failed'.format(self))
            returncode, output = self.proc.poll(), popen_output(self.proc, None, None)
        with self._lock:
            self._result = (returncode, output)
            callbacks, self._callbacks = self._callbacks, []
        self._runner._forget(self)
        for callback in callbacks:
            try:
                callback(returncode, output)
            except Exception:
                logger.exception('Exit handler for {!r} failed'.format(self))

    def _communicate(self):
        # type: () -> tuple[Optional[int], popen_output]
        code_b = b''.join(self._chunks) if self.uses_stdin else None
        self._chunks = []
        try:
            out = self.proc.communicate(code_b)

        except BrokenPipeError as err:
            if self.friendly_terminated:
                logger.info(
                    'Broken pipe after friendly terminating {!r}'.format(self))
            else:
                logger.warning('Exception: {}'.format(str(err)))
            self.proc.wait()
            out = (None, None)

        except OSError as err:
            # There are rare reports of '[Errno 9] Bad file descriptor'.
            if err.errno != 9:
                raise
            logger.warning('Exception: {}'.format(str(err)))
            self.proc.wait()
            out = (None, None)

        return self.proc.returncode, popen_output(self.proc, *out)


class ProcessRunner:
    """Spawn processes and watch each of them on its own thread."""

    def __init__(self):
        # type: () -> None
        self._handles = set()  # type: set[ProcessHandle]
        self._lock = threading.Lock()

    def start(
        self,
        argv: Sequence[str],
        uses_stdin: bool = True,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        error_stream: int = util.STREAM_BOTH,
        name: Optional[str] = None,
    ) -> ProcessHandle:
        """Start argv without blocking.

        Raises `OSError` if the process cannot be spawned, e.g. if the
        executable does not exist.
        """
        stdin = subprocess.PIPE if uses_stdin else None
        stdout = subprocess.PIPE if error_stream & util.STREAM_STDOUT else subprocess.DEVNULL
        stderr = subprocess.PIPE if error_stream & util.STREAM_STDERR else subprocess.DEVNULL

        proc = subprocess.Popen(
            list(argv), env=dict(env) if env is not None else None, cwd=cwd,
            stdin=stdin, stdout=stdout, stderr=stderr,
            startupinfo=util.create_startupinfo(),
            creationflags=util.get_creationflags()
        )
        handle = ProcessHandle(proc, self, name)
        with self._lock:
            self._handles.add(handle)
        if not uses_stdin:
            handle._watch()
        return handle

    def running(self):
        # type: () -> list[ProcessHandle]
        with self._lock:
            return list(self._handles)

    def shutdown(self, wait=False):
        # type: (bool) -> None
        """Optionally wait for the watchers of all running processes."""
        if not wait:
            return
        for handle in self.running():
            handle.join()

    def _forget(self, handle):
        # type: (ProcessHandle) -> None
        with self._lock:
            self._handles.discard(handle)
