from textwrap import dedent
from unittest import TestCase

from parameterized import parameterized as p
from mockito import unstub

import re

from quickdef import (
    CheckerConfig,
    CheckerError,
    Diagnostic,
    Document,
    ERROR,
    LintMatch,
    WARNING,
    default_extract,
)
from quickdef.parser import filter_errors, parse_output
from quickdef.process import popen_output


def extract_diag(m, document):
    severity = {'HIGH': ERROR, 'LOW': WARNING}.get(m['level'])
    start, end = m.snapshot.diag_region(m.line)
    return document, start, end, severity, '{} ({})'.format(m.message, m.code)


DIAG_REGEX = r'^diag:(?P<line>\d+) (?P<level>\w+) (?P<code>\w+): (?P<message>.*)$'
DiagChecker = CheckerConfig(
    name='diag',
    cmd=['diag'],
    regex=DIAG_REGEX,
    extract=extract_diag,
)

FakeChecker = CheckerConfig(
    name='fake_checker_1',
    cmd=['fake_checker_1'],
    regex=r"""(?x)
        ^stdin:(?P<line>\d+):(?P<col>\d+)?\s
        (?P<error>ERROR):\s
        (?P<near>'[^']+')?
        (?P<message>.*)$
    """,
    multiline=False,
)

FakeCheckerColMatchesALength = CheckerConfig(
    name='fake_checker_2',
    cmd=['fake_checker_2'],
    regex=r"""(?x)
        ^stdin:(?P<line>\d+):(?P<col>x+)?\s
        (?P<error>ERROR):\s
        (?P<near>'[^']+')?
        (?P<message>.*)$
    """,
    multiline=False,
)

CODE = dedent("""\
    one
    two
    three
      four
    five
""")


class _BaseTestCase(TestCase):
    def tearDown(self):
        unstub()

    def parse(self, output, checker=DiagChecker, code=CODE):
        document = Document(code)
        self.document = document
        return parse_output(output, checker, document, document.snapshot())


class TestExtraction(_BaseTestCase):
    def test_reports_one_diagnostic_for_a_match_with_severity(self):
        result = self.parse("diag:4 HIGH X1: msg")

        self.assertEqual(
            [Diagnostic(self.document, 16, 20, ERROR, 'msg (X1)')],
            result
        )

    def test_drops_match_without_severity(self):
        result = self.parse("diag:4 UNDEFINED X1: msg")

        self.assertEqual([], result)

    def test_keeps_order_of_appearance(self):
        output = dedent("""\
            diag:5 LOW W2: second last line
            some noise
            diag:1 HIGH E1: first line
            diag:2 UNDEFINED E2: dropped
            diag:3 HIGH E3: third line
        """)
        result = self.parse(output)

        self.assertEqual(
            ['second last line (W2)', 'first line (E1)', 'third line (E3)'],
            [d.message for d in result]
        )
        self.assertEqual([WARNING, ERROR, ERROR], [d.severity for d in result])

    def test_no_output_yields_no_diagnostics(self):
        self.assertEqual([], self.parse(''))

    def test_no_matches_yields_no_diagnostics(self):
        self.assertEqual([], self.parse('everything fine\n'))

    def test_extraction_may_skip_a_match_by_returning_none(self):
        checker = CheckerConfig(
            name='skipper', cmd=['skipper'], regex=DIAG_REGEX,
            extract=lambda m, document: None
        )

        self.assertEqual([], self.parse("diag:1 HIGH X1: msg", checker=checker))

    def test_multiple_matches_on_one_line_are_found(self):
        checker = CheckerConfig(
            name='multi', cmd=['multi'],
            regex=r'L(?P<line>\d+):(?P<message>\w+);',
        )
        result = self.parse("L1:foo;L2:bar;", checker=checker)

        self.assertEqual(['foo', 'bar'], [d.message for d in result])
        self.assertEqual([(0, 3), (4, 7)], [(d.start, d.end) for d in result])

    def test_match_exposes_the_raw_regex_match(self):
        seen = []

        def extract(m, document):
            seen.append(m.group('code'))
            return None

        checker = CheckerConfig(
            name='raw', cmd=['raw'], regex=DIAG_REGEX, extract=extract)
        self.parse("diag:1 HIGH X1: msg", checker=checker)

        self.assertEqual(['X1'], seen)

    def test_precompiled_regex_without_multiline_flag_still_matches_every_line(self):
        checker = CheckerConfig(
            name='precompiled', cmd=['precompiled'],
            regex=re.compile(r'^diag:(?P<line>\d+) (?P<message>.*)$'),
        )
        result = self.parse('diag:1 first\ndiag:2 second\n', checker=checker)

        self.assertTrue(checker.multiline)
        self.assertTrue(checker.regex.flags & re.M)
        self.assertEqual(['first', 'second'], [d.message for d in result])

    def test_group_without_a_raw_match_raises_attribute_error(self):
        m = LintMatch(line=0, message='msg')

        with self.assertRaises(AttributeError):
            m.group('line')

    def test_default_extraction_needs_a_snapshot(self):
        m = LintMatch(line=0, message='msg')

        with self.assertRaises(CheckerError):
            default_extract(m, Document('one\n'))


class TestDefaultExtraction(_BaseTestCase):
    def test_basic_info(self):
        INPUT = "This is the source code."
        OUTPUT = "stdin:1:1 ERROR: The message"

        result = self.parse(OUTPUT, checker=FakeChecker, code=INPUT)

        self.assertEqual(
            [Diagnostic(self.document, 0, 4, ERROR, 'The message')],
            result
        )

    def test_col_of_non_digits_counts_its_length(self):
        INPUT = "This is the source code."
        OUTPUT = "stdin:1:xxxxx ERROR: The message"

        result = self.parse(OUTPUT, checker=FakeCheckerColMatchesALength, code=INPUT)

        self.assertEqual([(5, 7)], [(d.start, d.end) for d in result])

    def test_near_without_col_selects_the_word(self):
        INPUT = "This is the source code."
        OUTPUT = "stdin:1: ERROR: 'source' is bad"

        result = self.parse(OUTPUT, checker=FakeChecker, code=INPUT)

        self.assertEqual([(12, 18)], [(d.start, d.end) for d in result])

    def test_line_out_of_range_is_clamped(self):
        INPUT = "a\nb"
        OUTPUT = "stdin:10:1 ERROR: The message"

        result = self.parse(OUTPUT, checker=FakeChecker, code=INPUT)

        self.assertEqual([(2, 3)], [(d.start, d.end) for d in result])

    def test_zero_based_checkers(self):
        checker = CheckerConfig(
            name='zero', cmd=['zero'],
            regex=r'^(?P<line>\d+):(?P<col>\d+): (?P<warning>W\d+) (?P<message>.*)$',
            line_col_base=(0, 0),
        )
        result = self.parse("1:0: W100 Trailing", checker=checker, code="foo\nbar baz\n")

        self.assertEqual(
            [Diagnostic(self.document, 4, 7, WARNING, 'Trailing')],
            result
        )

    def test_code_is_appended_to_the_message(self):
        checker = CheckerConfig(
            name='coded', cmd=['coded'],
            regex=r'^(?P<line>\d+): (?P<code>\w+) (?P<message>.*)$',
            default_type=WARNING,
        )
        result = self.parse("2: E501 line too long", checker=checker)

        self.assertEqual([('line too long (E501)', WARNING)], [
            (d.message, d.severity) for d in result
        ])

    def test_end_line_and_end_col(self):
        checker = CheckerConfig(
            name='ranged', cmd=['ranged'],
            regex=(
                r'^(?P<line>\d+):(?P<col>\d+)-(?P<end_line>\d+):(?P<end_col>\d+) '
                r'(?P<message>.*)$'
            ),
        )
        result = self.parse("1:2-2:3 spans lines", checker=checker, code="abcd\nefgh\n")

        self.assertEqual([(1, 7)], [(d.start, d.end) for d in result])

    def test_matches_without_message_are_skipped(self):
        checker = CheckerConfig(
            name='silent', cmd=['silent'],
            regex=r'^(?P<line>\d+):(?P<message>.*)$',
        )

        self.assertEqual([], self.parse("1:", checker=checker))


class TestStreams(_BaseTestCase):
    def test_on_stderr_receives_stderr_and_only_stdout_is_parsed(self):
        seen = []
        checker = CheckerConfig(
            name='streams', cmd=['streams'], regex=DIAG_REGEX,
            extract=extract_diag, on_stderr=seen.append,
        )
        output = popen_output(None, b"diag:1 HIGH X1: msg\n", b"diag:2 HIGH X2: crash\n")

        result = self.parse(output, checker=checker)

        self.assertEqual(['msg (X1)'], [d.message for d in result])
        self.assertEqual(["diag:2 HIGH X2: crash\n"], seen)

    def test_without_on_stderr_both_streams_are_parsed(self):
        output = popen_output(None, b"diag:1 HIGH X1: msg\n", b"diag:2 HIGH X2: crash\n")

        result = self.parse(output)

        self.assertEqual(['msg (X1)', 'crash (X2)'], [d.message for d in result])


class TestFilterErrors(TestCase):
    def setUp(self):
        document = Document('')
        self.diagnostics = [
            Diagnostic(document, 0, 1, ERROR, 'the message (E1)'),
            Diagnostic(document, 0, 1, WARNING, 'a massage (W3)'),
            Diagnostic(document, 0, 1, WARNING, 'the message (W4)'),
        ]

    @p.expand([
        # Ensure 'falsy' values do not filter anything
        ([], ['E1', 'W3', 'W4']),
        (None, ['E1', 'W3', 'W4']),
        (False, ['E1', 'W3', 'W4']),

        (['age'], []),
        (['massage'], ['E1', 'W4']),

        # For convenience allow strings as input
        ('massage', ['E1', 'W4']),

        # All input is interpreted as regex strings
        (['m[ae]ss'], []),
        (['E1|W3'], ['W4']),
        ([r'\(W\d\)'], ['E1']),

        # severity can be checked
        (['^error'], ['W3', 'W4']),
        (['^warning: the'], ['E1', 'W3']),

        # matching is case-insensitive
        (['MESSAGE'], ['W3']),

        # invalid patterns are ignored
        (['(', 'E1'], ['W3', 'W4']),
    ])
    def test_filter_results(self, filter_errors_setting, expected_codes):
        result = filter_errors(self.diagnostics, filter_errors_setting)

        self.assertEqual(
            expected_codes,
            [d.message[-3:-1] for d in result]
        )

    def test_non_string_severities_can_be_filtered(self):
        document = Document('')
        diagnostics = [
            Diagnostic(document, 0, 1, 2, 'level two (E1)'),
            Diagnostic(document, 0, 1, WARNING, 'a warning (W2)'),
        ]

        result = filter_errors(diagnostics, ['^2: '])

        self.assertEqual(['a warning (W2)'], [d.message for d in result])
