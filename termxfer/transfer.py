import os
import tempfile
import threading
import time
from typing import Any, Callable, Dict, Optional

import paramiko

from termxfer.display import Display
from termxfer.paths import base_name, resolve_remote_path
from termxfer.utils import EventLog


class TransferTimeout(Exception):
    pass


class TransferCancelled(Exception):
    pass


class SFTPTransfer:
    """Download/upload primitives over the session's SSH connection."""

    def __init__(self, client_getter: Callable[[], Optional[paramiko.SSHClient]], log: Optional[EventLog] = None):
        self.client_getter = client_getter
        self.log = log or EventLog()
        self.sftp: Optional[paramiko.SFTPClient] = None
        self.lock = threading.Lock()

    def _open(self) -> paramiko.SFTPClient:
        with self.lock:
            if self.sftp is not None:
                channel = self.sftp.get_channel()
                if channel is not None and not channel.closed:
                    return self.sftp
            client = self.client_getter()
            if client is None:
                raise paramiko.SSHException("not connected")
            self.sftp = client.open_sftp()
            return self.sftp

    def _progress(self, action: str, path: str) -> Callable[[int, int], None]:
        def callback(done: int, total: int) -> None:
            if done == total:
                self.log.event("SYS", "transfer_progress", action=action, path=path, bytes=done, total=total)
        return callback

    def download(self, remote_path: str, local_path: str) -> None:
        """Fetch into a scratch file beside local_path and move it into place on success.

        SFTPClient.get truncates its local target before reading the remote
        file, so a failed get must never be pointed at the real destination.
        """
        sftp = self._open()
        directory = os.path.dirname(os.path.abspath(local_path))
        fd, part_path = tempfile.mkstemp(prefix=".termxfer-", suffix=".part", dir=directory)
        os.close(fd)
        try:
            sftp.get(remote_path, part_path, callback=self._progress("download", remote_path))
            os.replace(part_path, local_path)
        except BaseException:
            try:
                os.unlink(part_path)
            except OSError:
                pass
            raise

    def upload(self, local_path: str, remote_path: str) -> None:
        self._open().put(local_path, remote_path, callback=self._progress("upload", remote_path))

    def abort(self) -> None:
        """Close the SFTP client so a transfer blocked inside it fails."""
        with self.lock:
            sftp, self.sftp = self.sftp, None
        if sftp is None:
            return
        try:
            sftp.close()
        except Exception as exc:
            self.log.event("SYS", "sftp_close_failed", error=str(exc))

    close = abort


class TransferInvoker:
    """Runs get/put against the transfer primitives and reports on the display.

    Failures are reported and swallowed; the interactive session carries on.
    """

    def __init__(
        self,
        primitives: Any,
        display: Display,
        log: Optional[EventLog] = None,
        timeout: float = 0.0,
        cancel_event: Optional[threading.Event] = None,
        poll_interval: float = 0.1,
        abort_grace: float = 5.0,
    ):
        self.primitives = primitives
        self.display = display
        self.log = log or EventLog()
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()
        self.poll_interval = poll_interval
        self.abort_grace = abort_grace

    def download(self, remote_dir: str, remote_path: str, local_path: Optional[str] = None) -> bool:
        if not local_path:
            local_path = base_name(remote_path)
        remote_path = resolve_remote_path(remote_path, remote_dir)

        self.display.status(f'\nDownloading "{remote_path}"...\n')
        return self._run(
            "download",
            lambda: self.primitives.download(remote_path, local_path),
            "File is downloaded successfully\n",
            {"remote_path": remote_path, "local_path": local_path},
        )

    def upload(self, remote_dir: str, local_path: str, remote_path: Optional[str] = None) -> bool:
        if not remote_path:
            remote_path = base_name(local_path)
        else:
            remote_path = resolve_remote_path(remote_path, remote_dir)

        self.display.status(f'\nUploading "{remote_path}"...\n')
        return self._run(
            "upload",
            lambda: self.primitives.upload(local_path, remote_path),
            "File is uploaded successfully\n",
            {"local_path": local_path, "remote_path": remote_path},
        )

    def _run(self, action: str, call: Callable[[], None], success: str, paths: Dict[str, str]) -> bool:
        self.log.event("IN", "transfer_start", action=action, **paths)
        started = time.time()
        try:
            self._await(call)
        except Exception as exc:
            self.display.status(f"{exc}\n")
            self.log.event("SYS", "transfer_failed", action=action, error=str(exc), **paths)
            return False
        self.display.status(success)
        self.log.event("SYS", "transfer_done", action=action, seconds=round(time.time() - started, 3), **paths)
        return True

    def _await(self, call: Callable[[], None]) -> None:
        result: Dict[str, BaseException] = {}
        done = threading.Event()

        def worker() -> None:
            try:
                call()
            except BaseException as exc:
                result["error"] = exc
            finally:
                done.set()

        thread = threading.Thread(target=worker, daemon=True)
        thread.start()

        deadline = (time.time() + self.timeout) if self.timeout > 0 else None
        while not done.wait(self.poll_interval):
            if self.cancel_event.is_set():
                self._abort(thread)
                raise TransferCancelled("Transfer cancelled")
            if deadline is not None and time.time() >= deadline:
                self._abort(thread)
                raise TransferTimeout(f"Transfer timed out after {self.timeout:g}s")

        if "error" in result:
            raise result["error"]

    def _abort(self, thread: threading.Thread) -> None:
        abort = getattr(self.primitives, "abort", None)
        if abort is not None:
            abort()
        # The worker must not keep writing after the failure has been reported.
        thread.join(self.abort_grace)
        if thread.is_alive():
            self.log.event("SYS", "transfer_worker_still_running", grace=self.abort_grace)
