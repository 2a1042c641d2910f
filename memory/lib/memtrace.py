#!/usr/bin/env python3
"""
memtrace.py - Parse memtrace heap logs into a DataView document

A memtrace log is a sequence of heap snapshots:

    HEAP SUMMARY Mon Jan 01 00:00:00 2024
    3 allocs, 2000 bytes were not free
    foo
    bar

        in use: 500000 bytes

Memory context blocks start at an "N allocs, M bytes were not free" line
and end at the next blank line. Every block is attached to the next
"in use:" line in the file and takes its elapsed time from the most
recent "HEAP SUMMARY" line.

Usage:
    from memtrace import parse_file
    viewer = parse_file('memtrace.log')
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from dataview import DataViewer


SNAPSHOT_PREFIX = 'HEAP SUMMARY '
INUSE_PREFIX = '    in use: '
DATE_FORMAT = '%a %b %d %H:%M:%S %Y'

MEMCONTEXT_RE = re.compile(r'(\d+)? allocs, (\d+)? bytes were not free')
INUSE_RE = re.compile(r'(\d+)? bytes')


class ParseError(ValueError):
    """A line matched a memtrace marker but its fields could not be extracted."""

    def __init__(self, message: str, text: str, line_number: int | None = None):
        self.text = text
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


@dataclass
class MemoryContext:
    allocs: int = 0
    bytes: int = 0
    callstack: str = ''


class LineKind(Enum):
    MEMCONTEXT_HEADER = 'memcontext-header'
    MEMCONTEXT_BODY = 'memcontext-body'
    SNAPSHOT = 'snapshot'
    INUSE = 'inuse'
    IGNORED = 'ignored'


class ParseState(Enum):
    SCANNING = 'scanning'
    IN_CONTEXT_BLOCK = 'in-context-block'


def match_memcontext_header(line: str) -> tuple[int, int] | None:
    """
    Match a memory context header anywhere in a line.

    Returns:
        (allocs, bytes) or None when the line is not a header

    Raises:
        ParseError: the header text is present but a count is missing
    """
    match = MEMCONTEXT_RE.search(line)
    if match is None:
        return None
    allocs, nbytes = match.groups()
    if allocs is None or nbytes is None:
        raise ParseError(f"Missing count in memory context header '{line}'", line)
    return int(allocs), int(nbytes)


def parse_snapshot_date(date: str) -> int:
    """Convert a HEAP SUMMARY date (e.g. 'Mon Jan 01 00:00:00 2024', UTC) to a Unix timestamp."""
    try:
        parsed = datetime.strptime(date, DATE_FORMAT)
    except ValueError:
        raise ParseError(f"Error parsing '{date}'", date) from None
    return int(parsed.replace(tzinfo=timezone.utc).timestamp())


def parse_inuse_bytes(inuse: str) -> int:
    """Extract the byte count from the remainder of an 'in use:' line."""
    match = INUSE_RE.search(inuse)
    if match is None or match.group(1) is None:
        raise ParseError(f"Missing byte count in '{inuse}'", inuse)
    return int(match.group(1))


def classify_line(line: str, in_block: bool = False) -> LineKind:
    """
    Categorize one log line.

    A memory context header wins over everything else, then any line
    inside an open block is body, then the snapshot and in-use prefixes.
    """
    if MEMCONTEXT_RE.search(line):
        return LineKind.MEMCONTEXT_HEADER
    if in_block:
        return LineKind.MEMCONTEXT_BODY
    if line.startswith(SNAPSHOT_PREFIX):
        return LineKind.SNAPSHOT
    if line.startswith(INUSE_PREFIX):
        return LineKind.INUSE
    return LineKind.IGNORED


class MemtraceParser:
    """Single-pass state machine feeding a DataViewer."""

    def __init__(self, viewer: DataViewer | None = None):
        self.viewer = viewer if viewer is not None else DataViewer()
        self.state = ParseState.SCANNING
        self.current = MemoryContext()
        self.pending: list[MemoryContext] = []
        self.timestamp = 0
        self.min_ts: int | None = None
        self.line_number = 0

    @property
    def in_block(self) -> bool:
        return self.state is ParseState.IN_CONTEXT_BLOCK

    def elapsed(self) -> int:
        """Seconds between the latest snapshot and the first one."""
        if self.min_ts is None:
            return 0
        return self.timestamp - self.min_ts

    def open_block(self, allocs: int, nbytes: int):
        self.current = MemoryContext(allocs=allocs, bytes=nbytes)
        self.state = ParseState.IN_CONTEXT_BLOCK

    def append_body(self, line: str):
        self.current.callstack += line + '\n'
        if not line:
            self.close_block()

    def close_block(self):
        self.pending.append(self.current)
        self.current = MemoryContext()
        self.state = ParseState.SCANNING

    def on_snapshot(self, date: str):
        self.timestamp = parse_snapshot_date(date)
        if self.min_ts is None:
            self.min_ts = self.timestamp

    def on_inuse(self, inuse: str):
        nbytes = parse_inuse_bytes(inuse)
        elapsed = self.elapsed()
        self.viewer.add_inuse_summary(elapsed, nbytes)
        self.viewer.add_memcontexts(elapsed, self.pending)
        self.pending = []

    def feed(self, line: str) -> LineKind:
        """Process one line (without its line terminator) and return its category."""
        self.line_number += 1
        try:
            return self._dispatch(line)
        except ParseError as e:
            if e.line_number is None:
                raise ParseError(str(e), e.text, self.line_number) from None
            raise

    def _dispatch(self, line: str) -> LineKind:
        kind = classify_line(line, self.in_block)
        if kind is LineKind.MEMCONTEXT_HEADER:
            self.open_block(*match_memcontext_header(line))
        elif kind is LineKind.MEMCONTEXT_BODY:
            self.append_body(line)
        elif kind is LineKind.SNAPSHOT:
            self.on_snapshot(line[len(SNAPSHOT_PREFIX):])
        elif kind is LineKind.INUSE:
            self.on_inuse(line[len(INUSE_PREFIX):])
        return kind

    def finish(self) -> DataViewer:
        """End of input. An unterminated block and unattached contexts are dropped."""
        return self.viewer


def strip_line_ending(line: str) -> str:
    """Drop one trailing LF or CRLF; a lone CR elsewhere is line content."""
    if line.endswith('\n'):
        line = line[:-1]
        if line.endswith('\r'):
            line = line[:-1]
    return line


def parse_lines(lines) -> DataViewer:
    """Parse an iterable of log lines; one line ending per line is stripped."""
    parser = MemtraceParser()
    for line in lines:
        parser.feed(strip_line_ending(line))
    return parser.finish()


def parse_file(path: Path) -> DataViewer:
    # split on "\n" only, so a bare "\r" stays inside its line
    with open(path, 'r', newline='\n') as f:
        return parse_lines(f)
