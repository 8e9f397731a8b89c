import os
import selectors
import signal
import sys
import threading
from typing import Any, List, Optional

import paramiko

from termxfer.config import BUFFER_SIZE, CONNECT_TIMEOUT, DEFAULT_TERM, KEEPALIVE_INTERVAL, ClientConfig
from termxfer.display import Display
from termxfer.forward import LocalForward, RemoteForward, close_all
from termxfer.interceptor import StreamInterceptor
from termxfer.prompt import PromptCommandMatcher
from termxfer.terminal import LineBuffer, raw_terminal, terminal_size
from termxfer.transfer import SFTPTransfer, TransferInvoker
from termxfer.utils import EventLog

STDIN_CHUNK = 1024


class ShellSession:
    """One interactive shell over SSH with get/put interception."""

    def __init__(self, config: ClientConfig, stdin: Any = None, stdout: Any = None):
        self.config = config
        self.stdin = stdin if stdin is not None else sys.stdin
        self.log = EventLog(config.LOG_PATH)

        self.client: Optional[paramiko.SSHClient] = None
        self.channel: Optional[paramiko.Channel] = None
        self.forwards: List[Any] = []
        self.closed_event = threading.Event()

        self.display = Display(stdout)
        self.line_buffer = LineBuffer()
        self.sftp = SFTPTransfer(lambda: self.client, self.log)
        self.invoker = TransferInvoker(
            self.sftp,
            self.display,
            log=self.log,
            timeout=config.TRANSFER_TIMEOUT,
            cancel_event=self.closed_event,
        )
        self.interceptor: Optional[StreamInterceptor] = None

    def connect(self) -> None:
        cfg = self.config
        self.client = paramiko.SSHClient()
        if cfg.SSH_VERIFY_HOST_KEY:
            self.client.load_system_host_keys()
        else:
            self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs = {
            "hostname": cfg.SSH_HOST,
            "port": cfg.SSH_PORT,
            "username": cfg.SSH_USER,
            "timeout": CONNECT_TIMEOUT,
            "allow_agent": True,
            "look_for_keys": True,
        }
        if cfg.SSH_PASSWORD:
            connect_kwargs["password"] = cfg.SSH_PASSWORD
        if cfg.SSH_KEY_PATH:
            connect_kwargs["key_filename"] = cfg.SSH_KEY_PATH
            if cfg.SSH_KEY_PASSPHRASE:
                connect_kwargs["passphrase"] = cfg.SSH_KEY_PASSPHRASE

        try:
            self.client.connect(**connect_kwargs)
        except Exception as exc:
            self.log.event("SYS", "connect_failed", host=cfg.SSH_HOST, port=cfg.SSH_PORT, error=str(exc))
            raise

        transport = self.client.get_transport()
        if transport:
            transport.set_keepalive(KEEPALIVE_INTERVAL)

        cols, rows = terminal_size()
        self.channel = self.client.invoke_shell(term=os.environ.get("TERM", DEFAULT_TERM), width=cols, height=rows)
        self.channel.set_combine_stderr(True)

        self.interceptor = StreamInterceptor(
            PromptCommandMatcher(),
            self.invoker,
            self.display,
            self.channel,
            line_buffer=self.line_buffer,
            log=self.log,
            resync_delay=cfg.RESYNC_DELAY,
        )
        self.log.event("SYS", "connected", host=cfg.SSH_HOST, port=cfg.SSH_PORT, user=cfg.SSH_USER)

    def start_forwards(self) -> None:
        transport = self.client.get_transport()
        if self.config.FORWARD_OUT:
            port, host, hostport = self.config.FORWARD_OUT
            forward = LocalForward(transport, port, host, hostport, self.log)
            forward.start()
            self.forwards.append(forward)
            print(f"Listening for connections on local port {port}\n")
        if self.config.FORWARD_IN:
            host, port = self.config.FORWARD_IN
            forward = RemoteForward(transport, host, port, self.log)
            forward.start()
            self.forwards.append(forward)
            print(f"Forwarding connections from remote {host}:{port} to local port {port}\n")

    def _on_resize(self, signum, frame) -> None:
        if self.channel and not self.channel.closed:
            cols, rows = terminal_size()
            try:
                self.channel.resize_pty(width=cols, height=rows)
            except Exception as exc:
                self.log.event("SYS", "resize_failed", error=str(exc))

    def _on_terminate(self, signum, frame) -> None:
        self.log.event("SYS", "terminate_signal", signal=signum)
        self.closed_event.set()
        if self.channel:
            self.channel.close()

    def _install_signals(self) -> dict:
        previous = {}
        handlers = {"SIGWINCH": self._on_resize, "SIGTERM": self._on_terminate, "SIGHUP": self._on_terminate}
        for name, handler in handlers.items():
            signum = getattr(signal, name, None)
            if signum is not None:
                previous[signum] = signal.signal(signum, handler)
        return previous

    def handle_channel_data(self, data: bytes) -> None:
        """Show a chunk of remote output and feed its lines to the interceptor."""
        self.display.passthrough(data)
        for line in self.line_buffer.feed(data):
            if self.interceptor.process_line(line):
                # Everything after the intercepted line was drained with it.
                break

    def run(self) -> int:
        """Pipe the local terminal to the remote shell until it exits. Returns its exit status."""
        stdin_fd = self.stdin.fileno()
        sel = selectors.DefaultSelector()
        sel.register(self.channel, selectors.EVENT_READ)
        sel.register(stdin_fd, selectors.EVENT_READ)

        previous = self._install_signals()
        try:
            with raw_terminal(self.stdin):
                self._pump(sel, stdin_fd)
        finally:
            sel.close()
            for signum, handler in previous.items():
                signal.signal(signum, handler)
        return self._finish()

    def _pump(self, sel: selectors.BaseSelector, stdin_fd: int) -> None:
        chan = self.channel
        while not chan.closed:
            for key, _ in sel.select(timeout=1.0):
                if key.fileobj is chan:
                    data = chan.recv(BUFFER_SIZE)
                    if not data:
                        return
                    self.handle_channel_data(data)
                else:
                    data = os.read(stdin_fd, STDIN_CHUNK)
                    if not data:
                        chan.shutdown_write()
                        sel.unregister(stdin_fd)
                        continue
                    chan.sendall(data)

    def _finish(self) -> int:
        print("Connection closed.")
        exit_status = self.channel.recv_exit_status()
        self.log.event("SYS", "shell_exit", exit_status=exit_status)
        return exit_status

    def close(self) -> None:
        self.closed_event.set()
        close_all(self.forwards)
        self.forwards = []
        self.sftp.close()
        try:
            if self.channel:
                self.channel.close()
        except Exception:
            pass
        self.channel = None

        try:
            if self.client:
                self.client.close()
        except Exception:
            pass
        self.client = None
