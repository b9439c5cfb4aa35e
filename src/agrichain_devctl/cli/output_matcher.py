"""
Readiness markers and incremental output scanning.

The marker patterns mirror the exact lines printed by ganache, truffle and the
backend server. They are an external contract: if one of those tools changes
its output, the matching test in ``tests/unit/test_output_matcher.py`` is the
place to update first.
"""

import re
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class MarkerMatch:
    """First occurrence of a marker in a process's output."""

    marker: str
    text: str
    groups: tuple[str, ...] = ()

    @property
    def value(self) -> Any:
        """Captured value, or True for a plain readiness marker."""
        return self.groups[0] if self.groups else True


@dataclass(frozen=True)
class ReadinessMarker:
    """Named pattern looked for in process output.

    A ``str`` pattern is matched as a literal substring; a compiled pattern is
    matched as a regular expression whose groups become the captured value.
    """

    name: str
    pattern: str | re.Pattern

    @property
    def is_literal(self) -> bool:
        return isinstance(self.pattern, str)

    def search(self, text: str, start: int = 0) -> MarkerMatch | None:
        if self.is_literal:
            index = text.find(self.pattern, start)
            if index < 0:
                return None
            return MarkerMatch(self.name, self.pattern)

        match = self.pattern.search(text, start)
        if not match:
            return None
        return MarkerMatch(self.name, match.group(0), match.groups())


NETWORK_READY = ReadinessMarker("network_ready", "Listening on")
CONTRACT_ADDRESS = ReadinessMarker(
    "contract_address", re.compile(r"contract address:\s*(0x[0-9a-fA-F]{40})")
)
NETWORK_ID = ReadinessMarker("network_id", re.compile(r"Network id:\s*(\d+)"))
SERVER_READY = ReadinessMarker("server_ready", "Server on port")


class OutputMatcher:
    """Scans successive output chunks for the first match of one marker.

    Chunks are appended to a cumulative buffer so a marker split across reads
    is still found. Literal markers are searched in the whole buffer. Regex
    markers are only searched in complete lines while streaming, because a
    trailing quantifier could otherwise match a prefix of a value that is still
    being written; ``finish`` scans the unterminated tail once the stream is
    closed. Once matched, the marker is never evaluated again.
    """

    def __init__(self, marker: ReadinessMarker):
        self.marker = marker
        self._buffer = ""
        self._scan_from = 0
        self._match: MarkerMatch | None = None
        self._finished = False

    @property
    def matched(self) -> bool:
        return self._match is not None

    @property
    def result(self) -> MarkerMatch | None:
        return self._match

    @property
    def text(self) -> str:
        """Everything fed so far."""
        return self._buffer

    def feed(self, chunk: str) -> MarkerMatch | None:
        """Append ``chunk`` and return the match if the marker is now present."""
        if self._finished:
            raise RuntimeError("cannot feed a finished matcher")
        self._buffer += chunk
        if self._match is None:
            self._scan(final=False)
        return self._match

    def finish(self) -> MarkerMatch | None:
        """Mark the stream closed and scan whatever is left."""
        if not self._finished:
            self._finished = True
            if self._match is None:
                self._scan(final=True)
        return self._match

    def _scan(self, final: bool) -> None:
        if self.marker.is_literal:
            self._match = self.marker.search(self._buffer, self._scan_from)
            if self._match is None:
                # A later match may start inside the last len(pattern) - 1 characters
                self._scan_from = max(
                    self._scan_from, len(self._buffer) - len(self.marker.pattern) + 1
                )
            return

        end = len(self._buffer) if final else self._buffer.rfind("\n") + 1
        if end <= self._scan_from and not final:
            return
        # Patterns may span a line break, so always rescan the complete-line prefix
        self._match = self.marker.search(self._buffer[:end])
        self._scan_from = end


def scan_all(text: str, markers: tuple[ReadinessMarker, ...]) -> dict[str, Any]:
    """Return the captured value of every marker found in ``text``."""
    values = {}
    for marker in markers:
        found = marker.search(text)
        if found:
            values[marker.name] = found.value
    return values


__all__ = [
    "MarkerMatch",
    "ReadinessMarker",
    "OutputMatcher",
    "scan_all",
    "NETWORK_READY",
    "CONTRACT_ADDRESS",
    "NETWORK_ID",
    "SERVER_READY",
]
