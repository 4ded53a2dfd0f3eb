import fnmatch
import re
from typing import Union


def path_is_match(path: Union[str, list[str]], request_path: str) -> bool:
    """Check whether a request path matches a route pattern or list of patterns.

    Patterns may be exact paths, fnmatch globs ("/api/*", "/user?") or
    regular expressions prefixed with "regex:" (matched with re.match, so
    anchored at the start only). A list matches if any entry matches.
    """
    if isinstance(path, list):
        return any(path_is_match(p, request_path) for p in path)
    if not isinstance(path, str):
        return False

    if path.startswith("regex:"):
        return re.match(path[len("regex:"):], request_path) is not None

    if any(c in path for c in "*?["):
        return fnmatch.fnmatchcase(request_path, path)

    return path == request_path
