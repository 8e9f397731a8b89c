import selectors
import socket
import threading
from typing import List, Optional

import paramiko

from termxfer.config import BUFFER_SIZE
from termxfer.utils import EventLog

LOCAL_BIND = "127.0.0.1"


def pump(channel: paramiko.Channel, sock: socket.socket, log: EventLog, label: str) -> None:
    """Copy bytes both ways between a forwarded channel and a local socket until either side closes."""
    sel = selectors.DefaultSelector()
    sel.register(sock, selectors.EVENT_READ)
    sel.register(channel, selectors.EVENT_READ)
    sent = received = 0
    try:
        while True:
            for key, _ in sel.select():
                if key.fileobj is sock:
                    data = sock.recv(BUFFER_SIZE)
                    if not data:
                        return
                    channel.sendall(data)
                    sent += len(data)
                else:
                    data = channel.recv(BUFFER_SIZE)
                    if not data:
                        return
                    sock.sendall(data)
                    received += len(data)
    except Exception as exc:
        log.event("SYS", "forward_error", forward=label, error=str(exc))
    finally:
        sel.close()
        for closer in (channel.close, sock.close):
            try:
                closer()
            except Exception:
                pass
        log.event("SYS", "forward_closed", forward=label, bytes_sent=sent, bytes_received=received)


def _start_pump(channel: paramiko.Channel, sock: socket.socket, log: EventLog, label: str) -> threading.Thread:
    thread = threading.Thread(target=pump, args=(channel, sock, log, label), daemon=True)
    thread.start()
    return thread


class LocalForward:
    """-L port:host:hostport, connections to a local port are tunnelled to host:hostport."""

    def __init__(self, transport: paramiko.Transport, port: int, host: str, hostport: int, log: Optional[EventLog] = None):
        self.transport = transport
        self.port = port
        self.host = host
        self.hostport = hostport
        self.log = log or EventLog()
        self.server: Optional[socket.socket] = None
        self.stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

    @property
    def label(self) -> str:
        return f"L{self.port}:{self.host}:{self.hostport}"

    def start(self) -> None:
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind((LOCAL_BIND, self.port))
        server.listen(16)
        self.server = server
        self.thread = threading.Thread(target=self._accept_loop, args=(server,), daemon=True)
        self.thread.start()
        self.log.event("SYS", "forward_listening", forward=self.label)

    def _accept_loop(self, server: socket.socket) -> None:
        while not self.stop_event.is_set():
            try:
                conn, origin = server.accept()
            except OSError:
                break
            try:
                channel = self.transport.open_channel("direct-tcpip", (self.host, self.hostport), origin)
            except Exception as exc:
                self.log.event("SYS", "forward_open_failed", forward=self.label, error=str(exc))
                conn.close()
                continue
            _start_pump(channel, conn, self.log, self.label)

    def close(self) -> None:
        self.stop_event.set()
        if self.server is not None:
            # shutdown wakes the thread blocked in accept()
            for closer in (lambda: self.server.shutdown(socket.SHUT_RDWR), self.server.close):
                try:
                    closer()
                except OSError:
                    pass
            self.server = None


class RemoteForward:
    """-R host:port, connections to host:port on the remote side reach the same port locally."""

    def __init__(self, transport: paramiko.Transport, host: str, port: int, log: Optional[EventLog] = None):
        self.transport = transport
        self.host = host
        self.port = port
        self.log = log or EventLog()
        self.bound_port: Optional[int] = None

    @property
    def label(self) -> str:
        return f"R{self.host}:{self.port}"

    def start(self) -> None:
        self.bound_port = self.transport.request_port_forward(self.host, self.port, handler=self._handle)
        self.log.event("SYS", "forward_listening", forward=self.label, bound_port=self.bound_port)

    def _handle(self, channel: paramiko.Channel, origin, server) -> None:
        try:
            sock = socket.create_connection((LOCAL_BIND, self.port))
        except OSError as exc:
            self.log.event("SYS", "forward_connect_failed", forward=self.label, error=str(exc))
            channel.close()
            return
        _start_pump(channel, sock, self.log, self.label)

    def close(self) -> None:
        if self.bound_port is None:
            return
        try:
            self.transport.cancel_port_forward(self.host, self.bound_port)
        except Exception as exc:
            self.log.event("SYS", "forward_cancel_failed", forward=self.label, error=str(exc))
        self.bound_port = None


def close_all(forwards: List) -> None:
    for forward in forwards:
        forward.close()
