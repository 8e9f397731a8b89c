import time
from typing import Any, Callable, Optional

from termxfer.config import BUFFER_SIZE, RESYNC_DELAY, RESYNC_MAX_WAIT, RESYNC_POLL_INTERVAL
from termxfer.display import Display
from termxfer.prompt import ParsedCommand, PromptCommandMatcher
from termxfer.terminal import LineBuffer
from termxfer.transfer import TransferInvoker
from termxfer.utils import EventLog

PIPED = "piped"
INTERCEPTED = "intercepted"


class StreamInterceptor:
    """Suspends pass-through around a transfer and resynchronizes afterwards.

    PIPED -> INTERCEPTED when a line is recognized as get/put, back to PIPED
    once the transfer has finished, the remote has gone quiet, and the
    stale bytes that piled up in the meantime have been discarded.
    """

    def __init__(
        self,
        matcher: PromptCommandMatcher,
        invoker: TransferInvoker,
        display: Display,
        channel: Any,
        line_buffer: Optional[LineBuffer] = None,
        log: Optional[EventLog] = None,
        resync_delay: float = RESYNC_DELAY,
        resync_max_wait: float = RESYNC_MAX_WAIT,
        poll_interval: float = RESYNC_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.matcher = matcher
        self.invoker = invoker
        self.display = display
        self.channel = channel
        self.line_buffer = line_buffer
        self.log = log or EventLog()
        self.resync_delay = resync_delay
        self.resync_max_wait = max(resync_max_wait, resync_delay)
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep
        self.state = PIPED

    def _set_state(self, state: str) -> None:
        self.state = state
        self.log.event("SYS", "state", state=state)

    def process_line(self, line: str) -> bool:
        """Handle one echoed line. Returns True if it triggered a transfer."""
        command = self.matcher.match(line)
        if command is None:
            return False
        if self.state != PIPED:
            raise RuntimeError("transfer already in progress")

        self.display.detach()
        self._set_state(INTERCEPTED)
        try:
            self._dispatch(command)
        finally:
            self.resync()
        return True

    def _dispatch(self, command: ParsedCommand) -> None:
        self.log.event("IN", "command", keyword=command.keyword, source=command.source,
                       destination=command.destination, remote_dir=command.remote_dir)
        if command.keyword == "get":
            self.invoker.download(command.remote_dir, command.source, command.destination)
        elif command.keyword == "put":
            self.invoker.upload(command.remote_dir, command.source, command.destination)

    def resync(self) -> None:
        discarded = self.wait_for_quiet()
        discarded += self.drain()
        if self.line_buffer is not None:
            self.line_buffer.reset()
        self.display.attach()
        self._set_state(PIPED)
        self.log.event("SYS", "resync", discarded_bytes=discarded)
        # The prompt that followed the intercepted line was discarded; ask for a new one.
        if not getattr(self.channel, "closed", False):
            self.channel.send("\n")

    def wait_for_quiet(self) -> int:
        """Discard channel output until none has arrived for resync_delay seconds.

        Gives up after resync_max_wait even if the remote keeps talking.
        """
        discarded = 0
        start = self.clock()
        last_data = start
        while True:
            now = self.clock()
            if now - start >= self.resync_max_wait:
                self.log.event("SYS", "resync_not_quiet", waited=round(now - start, 3))
                break
            if now - last_data >= self.resync_delay:
                break
            chunk = self._read_any()
            if chunk:
                discarded += len(chunk)
                last_data = self.clock()
            else:
                self.sleep(self.poll_interval)
        return discarded

    def drain(self) -> int:
        discarded = 0
        while True:
            chunk = self._read_any()
            if not chunk:
                return discarded
            discarded += len(chunk)

    def _read_any(self) -> bytes:
        if self.channel.recv_ready():
            return self.channel.recv(BUFFER_SIZE)
        if self.channel.recv_stderr_ready():
            return self.channel.recv_stderr(BUFFER_SIZE)
        return b""
