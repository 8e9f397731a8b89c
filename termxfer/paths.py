import posixpath

HOME_MARKER = "~"


def normalize(path: str) -> str:
    return posixpath.normpath(path)


def resolve_remote_path(path: str, remote_dir: str) -> str:
    """Prefix a relative path with the directory shown in the remote prompt.

    SFTP resolves relative paths against the login directory, which is what
    the shell renders as ``~``, so a ``~`` working directory needs no prefix
    and a ``~/sub`` one becomes ``./sub``.
    """
    if posixpath.isabs(path) or remote_dir == HOME_MARKER:
        return normalize(path)
    if remote_dir.startswith(HOME_MARKER):
        remote_dir = "." + remote_dir[len(HOME_MARKER):]
    return normalize(f"{remote_dir}/{path}")


def base_name(path: str) -> str:
    stripped = path.rstrip("/")
    if not stripped:
        return path
    return posixpath.basename(stripped)
