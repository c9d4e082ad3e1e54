import os
from typing import Optional


def resolve_locator(locator: str, base_dir: Optional[str] = None) -> str:
    """
    Turns a plain path or a `file://` locator into a filesystem path.
    Relative paths resolve against `base_dir`, or the working directory.
    """
    rest = locator[7:] if locator.startswith("file://") else locator
    if rest.startswith("/"):
        return "/" + rest.lstrip("/")
    if rest.startswith("~"):
        return os.path.expanduser(rest)
    base = base_dir or os.getcwd()
    if rest == "":
        return base
    return os.path.normpath(os.path.join(base, rest))


def file_get_text(locator: str, base_dir: Optional[str] = None) -> str:
    path = resolve_locator(locator, base_dir)
    if os.path.isdir(path):
        raise IsADirectoryError(f"Not a file: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return f.read()
