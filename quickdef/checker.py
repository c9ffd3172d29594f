from __future__ import annotations

from collections import ChainMap
from dataclasses import dataclass, field
import logging
import os
import re
import shlex

from . import util
from .const import ERROR, FILE, INPUT_MODES, PIPE, WARNING

from typing import (
    TYPE_CHECKING, Any, Callable, Dict, List, Mapping, MutableMapping,
    Optional, Pattern, Sequence, Tuple, Union
)

if TYPE_CHECKING:
    from .document import Document, TextSnapshot

    Candidate = Tuple[Document, int, int, Optional[str], str]
    Extractor = Callable[['LintMatch', Document], Optional[Candidate]]
    Preflight = Callable[[Document], Any]


logger = logging.getLogger(__name__)


COMMON_CAPTURING_NAMES = (
    "filename", "error_type", "code", "line", "col", "end_line", "end_col",
    "error", "warning", "message", "near"
)

# Many checkers read stdin and we convert text to utf-8 before sending
# it, so make sure the target executable expects utf-8 as well.
UTF8_ENV_VARS = {
    'PYTHONIOENCODING': 'utf8',
    'LANG': 'en_US.UTF-8',
    'LC_CTYPE': 'en_US.UTF-8',
}


class CheckerError(Exception):
    ...


class ConfigurationError(CheckerError):
    """The checker definition itself is broken."""


class PreflightError(CheckerError):
    """The checker cannot run for this invocation.

    Callers treat this exactly like the checker being absent.
    """


class PermanentError(CheckerError):
    """The job failed, e.g. the executable could not be started."""


class TransientError(CheckerError):
    ...


class LintMatch(dict):
    """Convenience dict-a-like type representing one regex match.

    Basically the named groups of the checker's regex (AKA
    `match.groupdict()`) with `line`, `col`, `end_line` and `end_col`
    converted to zero-based ints.  All present keys can be accessed like
    an attribute.  All commonly used names (see: COMMON_CAPTURING_NAMES)
    can be safely accessed like an attribute, returning `None` if not
    present.  E.g.

        error = LintMatch({'foo': 'bar'})
        error.foo  # 'bar'
        error.error_type  # None
        error.quux  # raises AttributeError

    The snapshot of the text the checker actually saw is available as
    `error.snapshot`, the raw `re.Match` as `error.match`.
    """

    snapshot: Optional[TextSnapshot] = None
    match: Optional[re.Match] = None
    checker: Optional[CheckerConfig] = None

    def __getattr__(self, name):
        if name in COMMON_CAPTURING_NAMES:
            return self.get(name, '' if name == 'message' else None)

        try:
            return self[name]
        except KeyError:
            raise AttributeError(
                "'{}' object has no attribute '{}'".format(type(self).__name__, name)
            ) from None

    def group(self, *names):
        """Delegate to the underlying `re.Match`."""
        if self.match is None:
            raise AttributeError("{!r} carries no match".format(self))
        return self.match.group(*names)

    def __repr__(self):
        return "{}({})".format(type(self).__name__, super().__repr__())


@dataclass(frozen=True)
class Diagnostic:
    document: Document
    start: int
    end: int
    severity: str
    message: str

    def __repr__(self):
        return "Diagnostic({}, {}-{}, {}, {!r})".format(
            self.document.id, self.start, self.end, self.severity, self.message)


NOT_EXPANDABLE_SETTINGS = {
    "disable",
    "filter_errors",
}


class CheckerSettings:
    """
    Smallest possible dict-like container for checker settings to lazy
    substitute/expand variables found in the settings
    """

    def __init__(self, raw_settings, context, _computed_settings=None):
        # type: (Mapping[str, Any], Mapping[str, str], MutableMapping[str, Any]) -> None
        self.raw_settings = raw_settings
        self.context = context

        self._computed_settings = {} if _computed_settings is None else _computed_settings

    def __getitem__(self, key):
        # type: (str) -> Any
        if key in NOT_EXPANDABLE_SETTINGS:
            return self.raw_settings[key]

        try:
            return self._computed_settings[key]
        except KeyError:
            try:
                value = self.raw_settings[key]
            except KeyError:
                raise KeyError(key)
            else:
                final_value = util.substitute_variables(self.context, value)
                self._computed_settings[key] = final_value
                return final_value

    def get(self, key, default=None):
        # type: (str, Any) -> Any
        return self[key] if key in self else default

    def __contains__(self, key):
        # type: (str) -> bool
        return key in self._computed_settings or key in self.raw_settings

    def __setitem__(self, key, value):
        # type: (str, Any) -> None
        self._computed_settings[key] = value


def get_error_type(error, warning, default_type=ERROR):
    # type: (Optional[str], Optional[str], Optional[str]) -> Optional[str]
    if error:
        return ERROR
    elif warning:
        return WARNING
    else:
        return default_type


def strip_quotes(text):
    # type: (str) -> str
    """Return text stripped of enclosing single/double quotes."""
    if len(text) < 2:
        return text

    first = text[0]

    if first in ('\'', '"') and text[-1] == first:
        text = text[1:-1]

    return text


def default_extract(m, document):
    # type: (LintMatch, Document) -> Optional[Candidate]
    """Turn a `LintMatch` using the common capturing names into a candidate.

    Understands `line`, `col`, `end_line`, `end_col`, `near`, `message`,
    `code` and either `error_type` or the `error`/`warning` pair.  Matches
    without a `line` or `message` are skipped.
    """
    if m.line is None or not m.message:
        return None

    vv = m.snapshot
    if vv is None:
        raise CheckerError("{!r} carries no snapshot".format(m))
    default_type = m.checker.default_type if m.checker else ERROR
    error_type = m.error_type or get_error_type(m.error, m.warning, default_type)
    code = m.code or ''

    line = max(min(m.line, vv.max_lines()), 0)
    if m.end_line is None and m.end_col is None:
        col = m.col
        near = strip_quotes(m.near) if m.near else None
        if near and col is None:
            idx = vv.select_line(line).find(near)
            col = idx if idx >= 0 else None
        start, end = vv.diag_region(line, col)
        if near and col is not None:
            end = min(vv.size(), start + len(near))
    else:
        start, _ = vv.diag_region(line, m.col or 0)
        end_line = line if m.end_line is None else max(line, min(m.end_line, vv.max_lines()))
        a, b = vv.line_region(end_line)
        end = b if m.end_col is None else min(a + max(m.end_col, 0), b)
        end = min(vv.size(), max(start + 1, end))

    message = m.message.strip()
    if code and code != message:
        message = '{} ({})'.format(message, code)
    return document, start, end, error_type, message


@dataclass(frozen=True, eq=False)
class CheckerConfig:
    """Static description of one external checker.

    `cmd` is a list of strings (or a string which we `shlex.split`, or a
    callable receiving the variables context and returning either).
    Variables like `${temp_file}`, `${file}` or `${args}` are expanded
    when a job starts.  With `input_mode` `'pipe'` the snapshot is sent
    to stdin; with `'file'` it is written to a temp file and `${temp_file}`
    is appended to the command if the template does not mention it.
    """

    name: str
    cmd: Union[str, Sequence[str], Callable[[Mapping[str, str]], Union[str, Sequence[str]]]]
    regex: Union[str, Pattern]
    input_mode: str = PIPE
    extract: Optional[Extractor] = None
    preflight: Optional[Preflight] = None
    # `True`: search the whole output for non-overlapping matches with
    # `re.MULTILINE` set. `False`: match the regex against each line.
    multiline: bool = True
    re_flags: int = 0
    error_stream: int = util.STREAM_BOTH
    # Most checkers report one-based line and column numbers.
    line_col_base: Tuple[int, int] = (1, 1)
    default_type: str = ERROR
    tempfile_suffix: str = ''
    on_stderr: Optional[Callable[[str], None]] = None
    defaults: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("'name' must be given.")

        if self.input_mode not in INPUT_MODES:
            raise ConfigurationError(
                "{}: unknown input mode '{}', expected one of {}."
                .format(self.name, self.input_mode, util.format_items(INPUT_MODES))
            )

        if not self.cmd:
            raise ConfigurationError("{}: 'cmd' must be specified.".format(self.name))

        flags = self.re_flags | (re.MULTILINE if self.multiline else 0)
        regex = self.regex
        if isinstance(regex, str):
            try:
                regex = re.compile(regex, flags)
            except re.error as err:
                raise ConfigurationError(
                    '{}: error compiling regex: {}.'.format(self.name, str(err))
                ) from err
            object.__setattr__(self, 'regex', regex)
        elif self.multiline and not regex.flags & re.M:
            regex = re.compile(regex.pattern, regex.flags | re.M)
            object.__setattr__(self, 'regex', regex)

        if regex.flags & re.M == re.M:
            object.__setattr__(self, 'multiline', True)

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger('quickdef.checker.{}'.format(self.name))

    @property
    def extractor(self) -> Extractor:
        return self.extract or default_extract

    @property
    def uses_stdin(self) -> bool:
        return self.input_mode == PIPE

    def run_preflight(self, document: Document) -> None:
        """Run the pre-flight check, raise `PreflightError` if it fails."""
        if self.preflight is None:
            return

        try:
            ok = self.preflight(document)
        except PreflightError:
            raise
        except Exception as err:
            raise PreflightError(
                "{}: pre-flight check raised {!r}".format(self.name, err)
            ) from err

        if ok is False:
            raise PreflightError("{}: pre-flight check failed".format(self.name))

    def get_settings(self, user_settings, context):
        # type: (Mapping[str, Any], Mapping[str, str]) -> CheckerSettings
        return CheckerSettings(ChainMap({}, user_settings, self.defaults), context)

    def get_cmd(self, context):
        # type: (Mapping[str, str]) -> List[str]
        cmd = self.cmd
        if callable(cmd):
            cmd = cmd(context)

        if isinstance(cmd, str):
            return shlex.split(cmd)
        return list(cmd)

    def build_cmd(self, settings, context, paths=()):
        # type: (CheckerSettings, Mapping[str, str], Tuple[str, ...]) -> List[str]
        """Return the final argv.

        Expands variables, inserts the user `args` and resolves the
        executable.  Raises `PermanentError` if it cannot be found.
        """
        template = self.get_cmd(context)
        cmd = util.substitute_variables(context, template)
        if self.input_mode == FILE and not any('${temp_file}' in part for part in template):
            self.logger.info(
                "{}: appending temp file to the command".format(self.name))
            cmd.append(context['temp_file'])

        cmd = self.insert_args(cmd, template, settings)
        cmd[0:1] = self.resolve_executable(cmd[0], settings, paths)
        return cmd

    def resolve_executable(self, which, settings, paths=()):
        # type: (str, CheckerSettings, Tuple[str, ...]) -> List[str]
        executable = settings.get('executable', None)  # type: Union[None, str, List[str]]
        if executable:
            wanted_executable, *rest = util.ensure_list(executable)
            resolved = util.which(wanted_executable, paths)
            if not resolved:
                raise PermanentError(
                    "{}: You set 'executable' to {!r}.  However, '{}' does not "
                    "exist or is not executable."
                    .format(self.name, executable, wanted_executable)
                )
            self.logger.info(
                "{}: wanted executable is {!r}".format(self.name, executable))
            return [resolved] + rest

        if os.path.isabs(which) and os.access(which, os.X_OK):
            return [which]

        resolved = util.which(which, paths)
        if not resolved:
            raise PermanentError("{} cannot locate '{}'".format(self.name, which))
        return [resolved]

    def insert_args(self, cmd, template, settings):
        # type: (List[str], List[str], CheckerSettings) -> List[str]
        """Insert user arguments into cmd and return the result."""
        args = self.get_user_args(settings)

        if '${args}' in template:
            i = template.index('${args}')
            cmd[i:i + 1] = args
        else:
            cmd += args

        return cmd

    def get_user_args(self, settings):
        # type: (CheckerSettings) -> List[str]
        """Return any args the user specifies in settings as a list."""
        args = settings.get('args', [])

        if isinstance(args, str):
            args = shlex.split(args)
        else:
            args = list(args)

        return args

    def get_working_dir(self, settings, context):
        # type: (CheckerSettings, Mapping[str, str]) -> Optional[str]
        """Return the working dir for this lint."""
        cwd = settings.get('working_dir', None)
        if cwd:
            if os.path.isdir(cwd):
                return cwd
            self.logger.error(
                "{}: wanted working_dir '{}' is not a directory"
                .format(self.name, cwd)
            )
            return None

        return context.get('folder') or context.get('file_path') or None

    def get_environment(self, settings, paths=()):
        # type: (CheckerSettings, Tuple[str, ...]) -> ChainMap
        """Return runtime environment for this lint."""
        return ChainMap(
            {}, settings.get('env', {}), UTF8_ENV_VARS, util.create_environment(paths)
        )

    def get_tempfile_suffix(self, document):
        # type: (Document) -> str
        """Return a good filename suffix."""
        if document.file_name:
            _, suffix = os.path.splitext(document.file_name)
        else:
            suffix = self.tempfile_suffix

        if suffix and not suffix.startswith('.'):
            suffix = '.' + suffix

        return suffix


def get_context(document, folder=None, additional_context=None):
    # type: (Document, Optional[str], Optional[Mapping[str, str]]) -> MutableMapping[str, str]
    """Return the variables available in `cmd` and in the settings."""
    context = ChainMap({}, os.environ)  # type: MutableMapping[str, str]

    if folder:
        context['folder'] = folder

    filename = document.file_name
    if filename:
        basename = os.path.basename(filename)
        file_base_name, file_extension = os.path.splitext(basename)

        context['file'] = filename
        context['file_path'] = os.path.dirname(filename)
        context['file_name'] = basename
        context['file_base_name'] = file_base_name
        context['file_extension'] = file_extension

    context['canonical_filename'] = util.canonical_filename(document)
    context['short_canonical_filename'] = util.short_canonical_filename(document)
    context['document_id'] = str(document.id)

    if additional_context:
        context.update(additional_context)

    return context
