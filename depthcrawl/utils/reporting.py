"""
Observation channel: visit events and the sinks that receive them.
"""

import json
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


_QUOTE_ESCAPES = {
    '\a': '\\a',
    '\b': '\\b',
    '\f': '\\f',
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
    '\v': '\\v',
    '\\': '\\\\',
    '"': '\\"',
}


def quote(text: str) -> str:
    """
    Double-quote text the way Go's %q verb does.

    Printable characters are kept as they are, including non-ASCII ones.
    Named control characters use their short escapes (\\a, \\n, ...). Other
    non-printable characters become \\xHH below 0x80 and \\uHHHH or
    \\UHHHHHHHH above it.
    """
    parts = []
    for char in text:
        if char in _QUOTE_ESCAPES:
            parts.append(_QUOTE_ESCAPES[char])
        elif char.isprintable():
            parts.append(char)
        else:
            code = ord(char)
            if code < 0x80:
                parts.append(f'\\x{code:02x}')
            elif code <= 0xFFFF:
                parts.append(f'\\u{code:04x}')
            else:
                parts.append(f'\\U{code:08x}')
    return '"' + ''.join(parts) + '"'


@dataclass(frozen=True)
class VisitEvent:
    """Outcome of one visit: found with content, or failed with an error."""
    url: str
    depth: int
    found: bool
    content: Optional[str] = None
    error: Optional[str] = None

    def line(self) -> str:
        """Render the event as a single output line."""
        if self.found:
            return f"found: {self.url} {quote(self.content or '')}"
        return self.error or ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'depth': self.depth,
            'found': self.found,
            'content': self.content,
            'error': self.error
        }


class Reporter:
    """Append-only sink for visit events."""

    def report(self, event: VisitEvent):
        raise NotImplementedError

    def flush(self):
        pass


class PlainReporter(Reporter):
    """Writes one human-readable line per event."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def report(self, event: VisitEvent):
        self.stream.write(event.line() + "\n")

    def flush(self):
        self.stream.flush()


class JsonLinesReporter(Reporter):
    """Writes one JSON object per event."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout

    def report(self, event: VisitEvent):
        self.stream.write(json.dumps(event.to_dict(), ensure_ascii=False) + "\n")

    def flush(self):
        self.stream.flush()


class CollectingReporter(Reporter):
    """Keeps every event in memory."""

    def __init__(self):
        self.events: List[VisitEvent] = []

    def report(self, event: VisitEvent):
        self.events.append(event)

    def lines(self) -> List[str]:
        return [event.line() for event in self.events]


class CallbackReporter(Reporter):
    """Forwards each event to a callable."""

    def __init__(self, callback: Callable[[VisitEvent], None]):
        self.callback = callback

    def report(self, event: VisitEvent):
        self.callback(event)


class MultiReporter(Reporter):
    """Fans events out to several reporters."""

    def __init__(self, *reporters: Reporter):
        self.reporters = list(reporters)

    def report(self, event: VisitEvent):
        for reporter in self.reporters:
            reporter.report(event)

    def flush(self):
        for reporter in self.reporters:
            reporter.flush()
