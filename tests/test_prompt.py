import pytest

from termxfer.prompt import ParsedCommand, PromptCommandMatcher, find_prompt, parse_command


@pytest.mark.unit
def test_find_prompt_extracts_directory_after_first_colon() -> None:
    match = find_prompt("user@host:/var/log$ tail -f syslog")
    assert match is not None
    assert match.text == "$ "
    assert match.offset == len("user@host:/var/log")
    assert match.remote_dir == "/var/log"
    assert match.command_text == "tail -f syslog"


@pytest.mark.unit
def test_find_prompt_without_colon_uses_whole_prefix() -> None:
    match = find_prompt("bash-5.1# ls")
    assert match.remote_dir == "bash-5.1"
    assert match.text == "# "


@pytest.mark.unit
def test_find_prompt_colon_after_terminator_gives_empty_directory() -> None:
    match = find_prompt("> echo a:b")
    assert match.remote_dir == ""
    assert match.command_text == "echo a:b"


@pytest.mark.unit
@pytest.mark.parametrize("line", ["", "plain output line", "total 48", "drwxr-xr-x 2 root root 4096 ."])
def test_find_prompt_no_terminator(line: str) -> None:
    assert find_prompt(line) is None


@pytest.mark.unit
def test_parse_command_get_with_destination() -> None:
    assert parse_command("  get a.txt b.txt  ") == ParsedCommand("get", "a.txt", "b.txt", "")


@pytest.mark.unit
def test_parse_command_ignores_extra_tokens() -> None:
    parsed = parse_command("put local.bin remote.bin --force now")
    assert (parsed.keyword, parsed.source, parsed.destination) == ("put", "local.bin", "remote.bin")


@pytest.mark.unit
def test_parse_command_collapses_repeated_whitespace() -> None:
    parsed = parse_command("get   a.txt\t b.txt")
    assert (parsed.source, parsed.destination) == ("a.txt", "b.txt")


@pytest.mark.unit
@pytest.mark.parametrize("text", ["ls -la", "get", "get   ", "getent passwd", "forget x", "gets x", "echo get x", ""])
def test_parse_command_rejects_other_text(text: str) -> None:
    assert parse_command(text) is None


@pytest.mark.unit
def test_parse_command_honours_custom_table() -> None:
    assert parse_command("get x", {"fetch": "fetch"}) is None
    assert parse_command("fetch x", {"fetch": "fetch"}).keyword == "fetch"


@pytest.mark.unit
def test_matcher_download_line() -> None:
    parsed = PromptCommandMatcher().match("user:/home/u$ get report.pdf")
    assert parsed == ParsedCommand("get", "report.pdf", None, "/home/u")


@pytest.mark.unit
def test_matcher_upload_line_in_home() -> None:
    parsed = PromptCommandMatcher().match("user:~$ put data.csv backup/data.csv")
    assert parsed == ParsedCommand("put", "data.csv", "backup/data.csv", "~")


@pytest.mark.unit
@pytest.mark.parametrize("line", [
    "user:/home/u$ ls -la",
    "get report.pdf",
    "user:/home/u$ ",
    "Downloading report.pdf",
])
def test_matcher_ignores_non_commands(line: str) -> None:
    assert PromptCommandMatcher().match(line) is None


@pytest.mark.unit
def test_matcher_on_xterm_titled_prompt() -> None:
    from termxfer.terminal import LineBuffer

    line = LineBuffer().feed(b"\x1b]0;u@h: /home/u\x07\x1b[01;32mu@h\x1b[00m:\x1b[01;34m/home/u\x1b[00m$ get report.pdf\r\n")[0]
    assert PromptCommandMatcher().match(line) == ParsedCommand("get", "report.pdf", None, "/home/u")
