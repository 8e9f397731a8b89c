"""
Shared fakes for the termxfer test suite: a scripted SSH channel, a manual
clock, recording transfer primitives and a recording event log.
"""

import io
import pathlib
import sys
import threading

import pytest

_PROJECT_ROOT = pathlib.Path(__file__).parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from termxfer.display import Display  # noqa: E402
from termxfer.interceptor import StreamInterceptor  # noqa: E402
from termxfer.prompt import PromptCommandMatcher  # noqa: E402
from termxfer.terminal import LineBuffer  # noqa: E402
from termxfer.transfer import TransferInvoker  # noqa: E402
from termxfer.utils import EventLog  # noqa: E402


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class FakeChannel:
    """Channel whose buffered output becomes readable at scheduled clock times."""

    def __init__(self, clock=None):
        self.clock = clock or FakeClock()
        self.stdout = []
        self.stderr = []
        self.sent = []
        self.closed = False

    def queue(self, data: bytes, at: float = 0.0, stderr: bool = False) -> None:
        (self.stderr if stderr else self.stdout).append((at, data))

    def _due(self, buf) -> bool:
        return bool(buf) and buf[0][0] <= self.clock.now

    def recv_ready(self) -> bool:
        return self._due(self.stdout)

    def recv_stderr_ready(self) -> bool:
        return self._due(self.stderr)

    def recv(self, nbytes: int) -> bytes:
        return self.stdout.pop(0)[1] if self._due(self.stdout) else b""

    def recv_stderr(self, nbytes: int) -> bytes:
        return self.stderr.pop(0)[1] if self._due(self.stderr) else b""

    def send(self, data) -> int:
        self.sent.append(data)
        return len(data)

    @property
    def pending(self) -> int:
        return len(self.stdout) + len(self.stderr)


class FakePrimitives:
    def __init__(self, display=None, error=None):
        self.calls = []
        self.display = display
        self.error = error
        self.attached_during_call = []
        self.aborted = 0
        self.release = threading.Event()
        self.block = False
        self.finished = False

    def _record(self, *call):
        self.calls.append(call)
        if self.display is not None:
            self.attached_during_call.append(self.display.attached)
        try:
            if self.block:
                self.release.wait(5)
            if self.error is not None:
                raise self.error
        finally:
            self.finished = True

    def download(self, remote_path, local_path):
        self._record("download", remote_path, local_path)

    def upload(self, local_path, remote_path):
        self._record("upload", local_path, remote_path)

    def abort(self):
        self.aborted += 1
        self.release.set()


class RecordingLog(EventLog):
    def __init__(self):
        super().__init__(None)
        self.events = []

    def event(self, direction, event, **fields):
        self.events.append((direction, event, fields))

    def states(self):
        return [fields["state"] for _, name, fields in self.events if name == "state"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel(clock):
    return FakeChannel(clock)


@pytest.fixture
def screen():
    return io.BytesIO()


@pytest.fixture
def display(screen):
    return Display(screen)


@pytest.fixture
def log():
    return RecordingLog()


@pytest.fixture
def primitives(display):
    return FakePrimitives(display)


@pytest.fixture
def make_interceptor(channel, clock, display, primitives, log):
    """Factory for a StreamInterceptor wired to the fakes, with a manual clock."""
    def _factory(line_buffer=None, resync_delay=0.5, resync_max_wait=5.0, invoker=None):
        invoker = invoker or TransferInvoker(primitives, display, log=log, poll_interval=0.01)
        return StreamInterceptor(
            PromptCommandMatcher(),
            invoker,
            display,
            channel,
            line_buffer=line_buffer or LineBuffer(),
            log=log,
            resync_delay=resync_delay,
            resync_max_wait=resync_max_wait,
            poll_interval=0.05,
            clock=clock,
            sleep=clock.sleep,
        )
    return _factory


@pytest.fixture
def make_primitives():
    """Factory for standalone FakePrimitives (failing or blocking ones)."""
    def _factory(error=None, block=False):
        prims = FakePrimitives(error=error)
        prims.block = block
        return prims
    return _factory
