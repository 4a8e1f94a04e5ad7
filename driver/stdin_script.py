"""
driver/stdin_script.py

Timed input script for driving the interactive CLI unattended.
───────────────────────────────────────────────────────────────
The driven CLI is a full-screen interactive program. It may print a
confirmation prompt at start-up and only accepts a task once its input box
is ready. There is no readiness signal to wait on, so the script uses fixed
delays between four phases:

  1. an affirmative token (answers a start-up confirmation, if any)
  2. a settle delay
  3. the autorun payload, verbatim
  4. a trailing delay, then a final line terminator to submit it

Known risk: fixed delays are timing-dependent. On a slow machine the
payload can arrive before the CLI is ready and be lost. Tune the delays
with CLAUDE_YOLO_SETTLE_DELAY / CLAUDE_YOLO_TRAILING_DELAY.

The script is data, not a shell script: the driver writes each step into
the child's terminal itself when `due()` says it is time.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

# In a terminal, Enter arrives as CR.
LINE_TERMINATOR = b"\r"
AFFIRMATIVE_TOKEN = b"y" + LINE_TERMINATOR


@dataclass(frozen=True)
class ScriptStep:
    """
    One write into the child's input.

    Attributes:
        phase  : "ack", "payload" or "submit".
        offset : Seconds after the script starts when this is written.
        data   : Bytes to write.
    """
    phase: str
    offset: float
    data: bytes


class StdinScript:
    """Ordered steps plus a cursor recording which have been written."""

    def __init__(self, steps: List[ScriptStep]) -> None:
        self._steps = list(steps)
        self._next = 0

    @property
    def steps(self) -> List[ScriptStep]:
        return list(self._steps)

    @property
    def finished(self) -> bool:
        return self._next >= len(self._steps)

    def due(self, elapsed: float) -> Iterator[ScriptStep]:
        """Yield, once each and in order, every step whose offset has passed."""
        while self._next < len(self._steps) and self._steps[self._next].offset <= elapsed:
            step = self._steps[self._next]
            self._next += 1
            yield step

    def next_offset(self) -> Optional[float]:
        if self.finished:
            return None
        return self._steps[self._next].offset


def build_stdin_script(
    payload: Optional[bytes],
    settle_delay: float = 2.0,
    trailing_delay: float = 2.0,
    affirmative: bytes = AFFIRMATIVE_TOKEN,
    terminator: bytes = LINE_TERMINATOR,
) -> StdinScript:
    """
    Build the four-phase script for *payload*.

    An empty or missing payload still produces every phase; the payload step
    is simply empty.
    """
    if settle_delay < 0 or trailing_delay < 0:
        raise ValueError("Script delays must not be negative")
    body = payload or b""
    return StdinScript([
        ScriptStep("ack", 0.0, affirmative),
        ScriptStep("payload", settle_delay, body),
        ScriptStep("submit", settle_delay + trailing_delay, terminator),
    ])


def read_payload(path: Union[str, Path]) -> Optional[bytes]:
    """Return the autorun payload bytes, or None when the file is absent."""
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        return None
