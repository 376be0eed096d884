'''
Helpers for reading back the shared log sink.

Matching is plain substring search over whole lines.  It is a best-effort
diagnostic layer over the daemon's unstructured text output, not a parser.
'''
import re
import typing

PANIC_SIGNATURE = 'panic:'

# Lowercase substrings that mark a line as a likely failure cause.
ERROR_PATTERNS = (
    'error',
    'failed',
    'fail:',
    'panic:',
    'fatal',
    'invalid',
    'cannot',
    'unable to',
    'permission denied',
    'no such file',
    'connection refused',
)

# Pattern matching ANSI escape codes starting with a Control Sequence
# Introducer (CSI) sequence.  Most notably Select Graphic Rendition (SGR)
# such as ‘\x1b[35;41m’.
_CSI_RE = re.compile('\x1b\\[[^\x40-\x7E]*[\x40-\x7E]')


class Match(typing.NamedTuple):
    index: int
    line: str

    @property
    def line_number(self) -> int:
        return self.index + 1


def remove_colour_codes(s: str) -> str:
    '''
    Consumes a string and strips out colour codes from it.
    '''
    return _CSI_RE.sub('', s)


def read_lines(filename, offset: int = 0) -> typing.List[str]:
    '''
    Reads the file from byte `offset` to the end and returns its lines
    without line terminators.  A missing file reads as empty.  Undecodable
    bytes are replaced.
    '''
    try:
        with open(filename, 'rb') as f:
            f.seek(offset)
            data = f.read()
    except FileNotFoundError:
        return []
    return data.decode('utf-8', errors='replace').splitlines()


def find_first(lines: typing.Iterable[str],
               patterns: typing.Iterable[str],
               ignore_case: bool = False) -> typing.Optional[Match]:
    '''
    Returns the first line containing any of `patterns`, scanning forward.
    '''
    patterns = tuple(patterns)
    for index, line in enumerate(lines):
        haystack = line.lower() if ignore_case else line
        if any(pattern in haystack for pattern in patterns):
            return Match(index, line)
    return None


def find_panic(lines: typing.Sequence[str]) -> typing.Optional[Match]:
    return find_first(lines, (PANIC_SIGNATURE,))


def find_error(lines: typing.Sequence[str]) -> typing.Optional[Match]:
    return find_first(lines, ERROR_PATTERNS, ignore_case=True)


def context_after(lines: typing.Sequence[str], index: int,
                  count: int) -> typing.List[str]:
    '''
    The line at `index` followed by at most `count` lines, as far as present.
    '''
    return list(lines[index:index + count + 1])


def tail(lines: typing.Sequence[str], count: int) -> typing.List[str]:
    if count <= 0:
        return []
    return list(lines[-count:])
