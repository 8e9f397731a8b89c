"""Prompt detection and embedded command recognition.

Shell output carries no marker between the prompt and what the user typed,
so both are guessed from the text of one echoed line: the first prompt
terminator splits the line, the part before it (after the first colon) is
taken as the remote working directory, and the part after it is checked
against the command table.
"""
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from termxfer.config import COMMANDS, PROMPT_MASK


@dataclass(frozen=True)
class PromptMatch:
    offset: int
    text: str
    remote_dir: str
    command_text: str


@dataclass(frozen=True)
class ParsedCommand:
    keyword: str
    source: str
    destination: Optional[str]
    remote_dir: str


def find_prompt(line: str, mask: re.Pattern = PROMPT_MASK) -> Optional[PromptMatch]:
    match = mask.search(line)
    if not match:
        return None
    offset = match.start()
    # hostname:cwd$ -> cwd; an empty slice when the colon sits past the prompt
    remote_dir = line[line.find(":") + 1:offset]
    return PromptMatch(
        offset=offset,
        text=match.group(0),
        remote_dir=remote_dir,
        command_text=line[match.end():],
    )


def parse_command(text: str, commands: Mapping[str, str] = COMMANDS) -> Optional[ParsedCommand]:
    """Return the command typed after a prompt, or None if it is not one of ours.

    Only the first three whitespace separated tokens count; anything after
    the destination is ignored.
    """
    trimmed = text.strip()
    keyword = next((kw for kw in commands.values() if trimmed.startswith(kw + " ")), None)
    if keyword is None:
        return None
    tokens = trimmed.split()[:3]
    return ParsedCommand(
        keyword=keyword,
        source=tokens[1],
        destination=tokens[2] if len(tokens) > 2 else None,
        remote_dir="",
    )


class PromptCommandMatcher:
    """Line -> optional ParsedCommand, the strategy used by StreamInterceptor."""

    def __init__(self, commands: Mapping[str, str] = COMMANDS, mask: re.Pattern = PROMPT_MASK):
        self.commands = commands
        self.mask = mask

    def match(self, line: str) -> Optional[ParsedCommand]:
        prompt = find_prompt(line, self.mask)
        if prompt is None:
            return None
        parsed = parse_command(prompt.command_text, self.commands)
        if parsed is None:
            return None
        return ParsedCommand(
            keyword=parsed.keyword,
            source=parsed.source,
            destination=parsed.destination,
            remote_dir=prompt.remote_dir,
        )
