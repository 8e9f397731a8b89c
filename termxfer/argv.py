import argparse
import sys
from typing import List, NoReturn, Optional

from termxfer.config import MAX_RESYNC_DELAY, MAX_TRANSFER_TIMEOUT, USAGE, ClientConfig
from termxfer.utils import clamp_float


def show_help_and_error(error: Optional[str] = None) -> NoReturn:
    """Print the error (if any) and usage, then exit 1 on error or 0 otherwise."""
    if error:
        print(error)
    print(USAGE)
    sys.exit(1 if error else 0)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        show_help_and_error(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="termxfer", add_help=False)
    parser.add_argument("destination", nargs="?", help="username[:password]@host")
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("-L", dest="local_forward", help="port:host:hostport")
    parser.add_argument("-R", dest="remote_forward", help="host:port")
    parser.add_argument("-p", "--port", type=int, help="SSH port (overrides SSH_PORT env)")
    parser.add_argument("-i", "--identity", help="Path to SSH private key (overrides SSH_KEY_PATH env)")
    parser.add_argument("--no-verify-host", action="store_true", help="Disable SSH host key verification")
    parser.add_argument("--log-file", help="Append JSON-lines session events here (overrides TERMXFER_LOG env)")
    parser.add_argument("--transfer-timeout", type=float, help="Seconds before a get/put is abandoned, 0 disables")
    parser.add_argument("--resync-delay", type=float, help="Quiet seconds to wait before restoring the terminal")
    return parser


def _parse_port(value: str, error: str) -> int:
    try:
        port = int(value)
    except ValueError:
        show_help_and_error(error)
    if not 0 < port < 65536:
        show_help_and_error(error)
    return port


def parse_args(argv: Optional[List[str]] = None, config: Optional[ClientConfig] = None) -> ClientConfig:
    """Parse the command line on top of ``config`` (env values already loaded)."""
    config = config or ClientConfig()
    args = _build_parser().parse_args(argv)

    if args.help or not args.destination:
        show_help_and_error(None)

    user_and_password, _, host = args.destination.partition("@")
    username, _, password = user_and_password.partition(":")
    if not host or not username:
        show_help_and_error("Connection params can't be parsed")

    config.SSH_USER = username
    config.SSH_HOST = host
    if password:
        config.SSH_PASSWORD = password

    if args.local_forward:
        error = "Local to remote port forwarding params can't be parsed"
        parts = args.local_forward.split(":")
        if len(parts) != 3 or not all(parts):
            show_help_and_error(error)
        port, fwd_host, hostport = parts
        config.FORWARD_OUT = (_parse_port(port, error), fwd_host, _parse_port(hostport, error))

    if args.remote_forward:
        error = "Remote to local port forwarding params can't be parsed"
        parts = args.remote_forward.split(":")
        if len(parts) != 2 or not all(parts):
            show_help_and_error(error)
        fwd_host, port = parts
        config.FORWARD_IN = (fwd_host, _parse_port(port, error))

    if args.port: config.SSH_PORT = args.port
    if args.identity: config.SSH_KEY_PATH = args.identity
    if args.no_verify_host: config.SSH_VERIFY_HOST_KEY = False
    if args.log_file: config.LOG_PATH = args.log_file
    if args.transfer_timeout is not None:
        config.TRANSFER_TIMEOUT = clamp_float(args.transfer_timeout, config.TRANSFER_TIMEOUT, 0.0, MAX_TRANSFER_TIMEOUT)
    if args.resync_delay is not None:
        config.RESYNC_DELAY = clamp_float(args.resync_delay, config.RESYNC_DELAY, 0.0, MAX_RESYNC_DELAY)

    return config
