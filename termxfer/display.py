import sys
import threading
from typing import BinaryIO, Optional

PASS_THROUGH = "pass_through"
STATUS = "status"


class Display:
    """The local terminal, written by one owner at a time.

    While attached, raw channel bytes go straight through. While detached,
    only status lines from the transfer code are written.
    """

    def __init__(self, stream: Optional[BinaryIO] = None):
        self.stream = stream if stream is not None else sys.stdout.buffer
        self.owner = PASS_THROUGH
        self.lock = threading.Lock()

    @property
    def attached(self) -> bool:
        return self.owner == PASS_THROUGH

    def attach(self) -> None:
        with self.lock:
            self.owner = PASS_THROUGH

    def detach(self) -> None:
        with self.lock:
            self.owner = STATUS

    def passthrough(self, data: bytes) -> bool:
        with self.lock:
            if self.owner != PASS_THROUGH:
                return False
            self._write(data)
            return True

    def status(self, text: str) -> None:
        # Raw-mode terminals do not turn LF into CRLF.
        payload = text.replace("\r\n", "\n").replace("\n", "\r\n").encode("utf-8", errors="replace")
        with self.lock:
            if self.owner != STATUS:
                raise RuntimeError("display is owned by pass-through output")
            self._write(payload)

    def _write(self, data: bytes) -> None:
        self.stream.write(data)
        self.stream.flush()
