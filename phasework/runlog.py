"""
RunLog - the per-run text sink.

Actions write lines keyed by their log ref ("<phase>/<action>"); the engine
writes its own lines (phase boundaries, the concurrency marker, build-time
failures) without a ref. Appends are atomic under a lock, so lines from
concurrently running actions interleave but never tear.

Every line is mirrored to the "phasework.run" logger at DEBUG, so a log
file set up with a DEBUG level also receives action output.
"""

import logging
import threading
from typing import Optional

run_logger = logging.getLogger("phasework.run")


class RunLog:
    """
    Thread-safe, append-only log of a single run.

    Usage:
        log = RunLog()
        log.write("Phase 'build' started")
        log.write("hello", ref="build/greet")

        log.lines            # ("Phase 'build' started", "[build/greet] hello")
        log.lines_for("build/greet")   # ("hello",)
    """

    def __init__(self, mirror: bool = True) -> None:
        self._lock = threading.Lock()
        self._entries: list[tuple[Optional[str], str]] = []
        self._mirror = mirror

    def write(self, text: str, ref: Optional[str] = None) -> None:
        """Append text, one entry per line."""
        lines = str(text).splitlines() or [""]
        with self._lock:
            for line in lines:
                self._entries.append((ref, line))
        if self._mirror:
            for line in lines:
                run_logger.debug(_format(ref, line))

    @property
    def lines(self) -> tuple[str, ...]:
        """Snapshot of every line written so far, formatted."""
        with self._lock:
            return tuple(_format(ref, line) for ref, line in self._entries)

    def lines_for(self, ref: str) -> tuple[str, ...]:
        """Raw lines written under one log ref."""
        with self._lock:
            return tuple(line for r, line in self._entries if r == ref)

    def text(self) -> str:
        return "\n".join(self.lines)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _format(ref: Optional[str], line: str) -> str:
    return f"[{ref}] {line}" if ref else line
