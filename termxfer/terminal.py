import codecs
import re
import shutil
from contextlib import contextmanager
from typing import List, Tuple

from termxfer.config import ANSI_ESCAPE, CONTROL_CHARS, OSC_SEQUENCE

LINE_BREAK = re.compile(r"\r\n|\r|\n")
BACKSPACES = ("\x08", "\x7f")


def _apply_backspaces(text: str) -> str:
    out: List[str] = []
    for ch in text:
        if ch in BACKSPACES:
            if out:
                out.pop()
        else:
            out.append(ch)
    return "".join(out)


def clean_line(text: str) -> str:
    text = OSC_SEQUENCE.sub("", text)
    text = ANSI_ESCAPE.sub("", text)
    text = _apply_backspaces(text)
    return CONTROL_CHARS.sub("", text)


class LineBuffer:
    """Turns the channel byte stream into complete, plain-text lines.

    A line ends at CRLF, CR or LF. A CR at the very end of a chunk is held
    back until the next chunk shows whether an LF follows it.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.partial = ""

    def feed(self, data: bytes) -> List[str]:
        text = self.partial + self.decoder.decode(data)
        held_cr = text.endswith("\r")
        if held_cr:
            text = text[:-1]
        pieces = LINE_BREAK.split(text)
        self.partial = pieces.pop() + ("\r" if held_cr else "")
        return [clean_line(piece) for piece in pieces]

    def reset(self) -> None:
        self.decoder.reset()
        self.partial = ""


def terminal_size() -> Tuple[int, int]:
    """Return (cols, rows) of the local tty, 80x24 when unknown."""
    size = shutil.get_terminal_size(fallback=(80, 24))
    return size.columns, size.lines


@contextmanager
def raw_terminal(stream):
    """Put a tty into raw mode for the duration of the block."""
    try:
        import termios
        import tty
        raw_ok = stream.isatty()
    except (ModuleNotFoundError, AttributeError, ValueError):
        raw_ok = False

    if not raw_ok:
        yield False
        return

    orig = termios.tcgetattr(stream)
    tty.setraw(stream, termios.TCSANOW)
    try:
        yield True
    finally:
        termios.tcsetattr(stream, termios.TCSADRAIN, orig)
