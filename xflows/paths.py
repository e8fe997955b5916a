"""Dot-path access into JSON values for xflows.

Paths use dot notation with optional bracket segments:

- Simple dot notation: "user.profile.name"
- Array access: "items[1].id"
- Quoted keys: "data['key with spaces']"
- Mixed notation: "settings.themes[0]['colors'].primary"

Reads never raise for missing paths. Writes never mutate their input: the
containers along the written path are copied and everything else is shared.
"""

from typing import Any

_MISSING = object()

CONTEXT_SCOPE = "context"
EVENT_SCOPE = "event"


def parse_path(path: str) -> list[str | int]:
    """
    Parse a property path into a list of keys/indices.

    Handles:
    - Dot notation: "user.profile.name" -> ["user", "profile", "name"]
    - Bracket notation: "user['profile']" -> ["user", "profile"]
    - Indices: "items[0].id" -> ["items", 0, "id"]

    Raises:
        ValueError: If path syntax is invalid
    """
    if not path:
        return []

    parts: list[str | int] = []
    i = 0
    current_key = ""

    while i < len(path):
        char = path[i]

        if char == ".":
            if current_key:
                parts.append(current_key)
                current_key = ""
        elif char == "[":
            if current_key:
                parts.append(current_key)
                current_key = ""
            bracket_content, bracket_end = _parse_bracket(path, i)
            parts.append(bracket_content)
            i = bracket_end
        else:
            current_key += char

        i += 1

    if current_key:
        parts.append(current_key)

    return parts


def _parse_bracket(path: str, start_index: int) -> tuple[str | int, int]:
    """Parse bracket notation starting at the given index.

    Returns:
        Tuple of (parsed_value, end_index)
    """
    i = start_index + 1
    content = ""
    in_quotes = False
    quote_char = None
    quoted = False

    while i < len(path):
        char = path[i]

        if not in_quotes:
            if char in ("'", '"'):
                in_quotes = True
                quoted = True
                quote_char = char
            elif char == "]":
                break
            elif not char.isspace():
                content += char
        else:
            if char == quote_char:
                if path[i - 1] == "\\":
                    content = content[:-1] + char
                else:
                    in_quotes = False
                    quote_char = None
            else:
                content += char

        i += 1

    if in_quotes:
        raise ValueError(f"Unclosed quote in bracket starting at position {start_index}")

    if i >= len(path):
        raise ValueError(f"Unclosed bracket starting at position {start_index}")

    if not quoted:
        try:
            return int(content), i
        except ValueError:
            pass
    return content, i


def format_path(parts: list[str | int]) -> str:
    """Reconstruct a path string from parsed parts."""
    result = ""
    for part in parts:
        if isinstance(part, int):
            result += f"[{part}]"
        elif result:
            result += f".{part}"
        else:
            result = part
    return result


def _step(current: Any, part: str | int) -> Any:
    if isinstance(current, dict):
        return current.get(part, _MISSING) if isinstance(part, str) else current.get(str(part), _MISSING)
    if isinstance(current, list):
        index = part if isinstance(part, int) else _as_index(part)
        if index is None or not -len(current) <= index < len(current):
            return _MISSING
        return current[index]
    return _MISSING


def _as_index(part: str) -> int | None:
    try:
        return int(part)
    except ValueError:
        return None


def _lookup(data: Any, path: str | list[str | int]) -> Any:
    parts = parse_path(path) if isinstance(path, str) else path
    current = data
    for part in parts:
        current = _step(current, part)
        if current is _MISSING:
            return _MISSING
    return current


def get_path(data: Any, path: str | list[str | int], default: Any = None) -> Any:
    """Return the value at `path`, or `default` when any segment is missing.

    A present value of None is returned as None, not as the default.
    """
    value = _lookup(data, path)
    return default if value is _MISSING else value


def has_path(data: Any, path: str | list[str | int]) -> bool:
    return _lookup(data, path) is not _MISSING


def set_path(data: Any, path: str | list[str | int], value: Any) -> Any:
    """Return a copy of `data` with `value` stored at `path`.

    Missing intermediate containers are created: a list when the next
    segment is an integer, a dict otherwise.
    """
    parts = parse_path(path) if isinstance(path, str) else path
    if not parts:
        return value
    return _set(data, parts, value)


def _set(current: Any, parts: list[str | int], value: Any) -> Any:
    head, rest = parts[0], parts[1:]

    if isinstance(head, int) and isinstance(current, list):
        copy = list(current)
        while len(copy) <= head:
            copy.append(None)
        copy[head] = _set(copy[head], rest, value) if rest else value
        return copy

    if isinstance(head, int) and current is None:
        copy = [None] * (head + 1)
        copy[head] = _set(None, rest, value) if rest else value
        return copy

    copy = dict(current) if isinstance(current, dict) else {}
    key = str(head)
    copy[key] = _set(copy.get(key), rest, value) if rest else value
    return copy


def delete_path(data: Any, path: str | list[str | int]) -> Any:
    """Return a copy of `data` without the value at `path`.

    Deleting a missing path returns the data unchanged.
    """
    parts = parse_path(path) if isinstance(path, str) else path
    if not parts or not has_path(data, parts):
        return data
    return _delete(data, parts)


def _delete(current: Any, parts: list[str | int]) -> Any:
    head, rest = parts[0], parts[1:]
    if isinstance(current, list):
        index = head if isinstance(head, int) else int(head)
        copy = list(current)
        if rest:
            copy[index] = _delete(copy[index], rest)
        else:
            del copy[index]
        return copy

    copy = dict(current)
    key = str(head)
    if rest:
        copy[key] = _delete(copy[key], rest)
    else:
        del copy[key]
    return copy


def flatten_paths(data: Any, prefix: str = "") -> set[str]:
    """Every dot path present in `data`, intermediate paths included.

    Lists contribute their own path but not their indices.

    Examples:
        flatten_paths({"a": {"b": 1}}) -> {"a", "a.b"}
    """
    paths: set[str] = set()
    if not isinstance(data, dict):
        return paths
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        paths.add(path)
        paths.update(flatten_paths(value, path))
    return paths


def split_scope(path: str) -> tuple[str, str]:
    """Split an explicit `context.`/`event.` prefix off a path.

    Paths without a recognised prefix belong to the context.

    Examples:
        split_scope("context.user.name") -> ("context", "user.name")
        split_scope("event.data") -> ("event", "data")
        split_scope("score") -> ("context", "score")
    """
    for scope in (CONTEXT_SCOPE, EVENT_SCOPE):
        if path == scope:
            return scope, ""
        if path.startswith(f"{scope}."):
            return scope, path[len(scope) + 1:]
    return CONTEXT_SCOPE, path


def resolve_scoped(path: str, context: Any, event: Any = None, default: Any = None) -> Any:
    """Look up a `context.`/`event.` scoped path."""
    scope, rest = split_scope(path)
    source = event if scope == EVENT_SCOPE else context
    return get_path(source, rest, default)
