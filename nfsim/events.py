# File location: nfsim/events.py
# Structured Event Log and Command Transcripts
# Fire-and-forget notification sink for NF events, plus line-by-line terminal output

from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Any
import logging

from .clock import SimulationClock
from .models import CommandResult, EventLogEntry, LineKind, LogLevel, TerminalLine

logger = logging.getLogger(__name__)

LineCallback = Callable[[TerminalLine], Any]


class Transcript:
    """
    Terminal output of one command.

    Lines are kept on a CommandResult and, when a callback is given,
    streamed to it as they are produced so long-running commands show
    progress line by line.
    """

    def __init__(self, command: str, on_line: Optional[LineCallback] = None):
        self.result = CommandResult(command=command)
        self.on_line = on_line

    def line(self, text: str = "", kind: LineKind = LineKind.INFO) -> TerminalLine:
        entry = TerminalLine(text=text, kind=kind)
        self.result.lines.append(entry)
        if self.on_line is not None:
            try:
                self.on_line(entry)
            except Exception as e:
                logger.error(f"Terminal line callback error: {e}")
        return entry

    def info(self, text: str):
        return self.line(text, LineKind.INFO)

    def success(self, text: str):
        return self.line(text, LineKind.SUCCESS)

    def warning(self, text: str):
        return self.line(text, LineKind.WARNING)

    def error(self, text: str):
        self.result.ok = False
        return self.line(text, LineKind.ERROR)

    def blank(self):
        return self.line("", LineKind.BLANK)


class EventLog:
    """
    Bounded per-NF event history with subscribers.

    Subscribers are called synchronously with each new entry. A failing
    subscriber is logged and skipped, never raised back to the caller.
    """

    def __init__(self, clock: SimulationClock, limit: int = 1000):
        self.clock = clock
        self._entries: Deque[EventLogEntry] = deque(maxlen=limit)
        self._callbacks: List[Callable[[EventLogEntry], Any]] = []

    def register_callback(self, callback: Callable[[EventLogEntry], Any]):
        """Register callback for new log entries"""
        self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[EventLogEntry], Any]):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def log(self, nf_id: Optional[str], level: LogLevel, message: str,
            details: Optional[Dict[str, Any]] = None) -> EventLogEntry:
        entry = EventLogEntry(
            nfId=nf_id,
            level=level,
            message=message,
            details=details or {},
            timestamp=self.clock.now(),
        )
        self._entries.append(entry)

        for callback in list(self._callbacks):
            try:
                callback(entry)
            except Exception as e:
                logger.error(f"Event log callback error: {e}")

        return entry

    def info(self, nf_id: Optional[str], message: str, details: Optional[Dict[str, Any]] = None):
        return self.log(nf_id, LogLevel.INFO, message, details)

    def success(self, nf_id: Optional[str], message: str, details: Optional[Dict[str, Any]] = None):
        return self.log(nf_id, LogLevel.SUCCESS, message, details)

    def warning(self, nf_id: Optional[str], message: str, details: Optional[Dict[str, Any]] = None):
        return self.log(nf_id, LogLevel.WARNING, message, details)

    def error(self, nf_id: Optional[str], message: str, details: Optional[Dict[str, Any]] = None):
        return self.log(nf_id, LogLevel.ERROR, message, details)

    def entries(self, nf_id: Optional[str] = None, limit: Optional[int] = None) -> List[EventLogEntry]:
        """Entries oldest first, optionally filtered to one NF"""
        result = [e for e in self._entries if nf_id is None or e.nfId == nf_id]
        if limit is not None:
            result = result[-limit:]
        return result

    def clear(self):
        self._entries.clear()
