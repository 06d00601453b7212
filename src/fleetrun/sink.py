"""Serialized output of result frames to the console and the log file."""

from __future__ import annotations

import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TextIO

from .errors import LogOpenError
from .session import ResultFrame

# Type alias for frame listener
FrameListener = Callable[[ResultFrame], None]


def render_frame(frame: ResultFrame) -> str:
    """Render a frame as one self-delimited block of text."""
    label = frame.host_label
    parts = [f"\n====== [{label}] ======\n"]
    parts.append(frame.output.decode("utf-8", errors="replace"))
    parts.append("\n")
    if frame.connection_error is not None:
        parts.append(f"[{label}] SSH connection error: {frame.connection_error}\n")
    if frame.execution_error is not None:
        parts.append(f"[{label}] Command execution error: {frame.execution_error}\n")
    return "".join(parts)


class OutputSink:
    """Writes each frame to the console and the log as one uninterrupted block."""

    def __init__(
        self,
        log_file: TextIO,
        console: TextIO | None = None,
        listener: FrameListener | None = None,
    ):
        self.log_file = log_file
        self.console = console
        self.listener = listener
        self.frames_recorded = 0
        self._lock = threading.Lock()

    def record(self, frame: ResultFrame) -> None:
        """Write one frame. Safe to call from concurrent runners."""
        text = render_frame(frame)
        with self._lock:
            if self.console is not None:
                self.console.write(text)
                self.console.flush()
            self.log_file.write(text)
            self.log_file.flush()
            self.frames_recorded += 1
        if self.listener:
            self.listener(frame)


@contextmanager
def open_sink(
    log_path: str | Path,
    console: TextIO | None = sys.stdout,
    listener: FrameListener | None = None,
) -> Iterator[OutputSink]:
    """Create or truncate the log file and yield a sink writing to it."""
    try:
        log_file = open(log_path, "w")
    except OSError as e:
        raise LogOpenError(f"Failed to open log file {log_path}: {e}") from e

    with log_file:
        yield OutputSink(log_file, console=console, listener=listener)
