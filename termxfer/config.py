import os
import re
from types import MappingProxyType
from typing import Optional

from termxfer.utils import clamp_float, to_bool

# ========= Static config =========
CONNECT_TIMEOUT = 10
KEEPALIVE_INTERVAL = 30
BUFFER_SIZE = 32768
DEFAULT_TERM = "xterm-256color"

# Seconds the remote must stay quiet after a transfer before buffers are drained.
RESYNC_DELAY = 0.5
MAX_RESYNC_DELAY = 10.0
RESYNC_MAX_WAIT = 5.0
RESYNC_POLL_INTERVAL = 0.02

DEFAULT_TRANSFER_TIMEOUT = 0.0  # 0 means disabled
MAX_TRANSFER_TIMEOUT = 86400.0

# ========= Interception =========
PROMPT_MASK = re.compile(r"[$#%>]\s?")
COMMANDS = MappingProxyType({
    "get": "get",
    "put": "put",
})

# ========= Output cleanup =========
# xterm title and other OSC strings, terminated by BEL or ST
OSC_SEQUENCE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

USAGE = "Usage:\ttermxfer username[:password]@host [-L port:host:hostport] [-R host:hostport]"


# ========= Runtime Configuration =========
class ClientConfig:
    def __init__(self):
        self.SSH_HOST: Optional[str] = None
        self.SSH_USER: Optional[str] = None
        self.SSH_PASSWORD: Optional[str] = None
        self.SSH_PORT: int = 22
        self.SSH_KEY_PATH: Optional[str] = None
        self.SSH_KEY_PASSPHRASE: Optional[str] = None
        self.SSH_VERIFY_HOST_KEY: bool = True
        self.LOG_PATH: Optional[str] = None
        self.TRANSFER_TIMEOUT: float = DEFAULT_TRANSFER_TIMEOUT
        self.RESYNC_DELAY: float = RESYNC_DELAY
        # (port, host, hostport) for -L, (host, port) for -R
        self.FORWARD_OUT: Optional[tuple] = None
        self.FORWARD_IN: Optional[tuple] = None

    def load_from_env(self):
        self.SSH_PASSWORD = os.environ.get("SSH_PASSWORD", self.SSH_PASSWORD)
        self.SSH_PORT = int(os.environ.get("SSH_PORT", self.SSH_PORT))
        self.SSH_KEY_PATH = os.environ.get("SSH_KEY_PATH", self.SSH_KEY_PATH)
        self.SSH_KEY_PASSPHRASE = os.environ.get("SSH_KEY_PASSPHRASE", self.SSH_KEY_PASSPHRASE)
        self.SSH_VERIFY_HOST_KEY = to_bool(os.environ.get("SSH_VERIFY_HOST_KEY"), self.SSH_VERIFY_HOST_KEY)
        self.LOG_PATH = os.environ.get("TERMXFER_LOG", self.LOG_PATH)
        self.TRANSFER_TIMEOUT = clamp_float(
            os.environ.get("TERMXFER_TRANSFER_TIMEOUT", self.TRANSFER_TIMEOUT),
            DEFAULT_TRANSFER_TIMEOUT, 0.0, MAX_TRANSFER_TIMEOUT,
        )
        self.RESYNC_DELAY = clamp_float(
            os.environ.get("TERMXFER_RESYNC_DELAY", self.RESYNC_DELAY),
            RESYNC_DELAY, 0.0, MAX_RESYNC_DELAY,
        )
        return self
