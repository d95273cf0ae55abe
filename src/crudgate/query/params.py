from typing import Any, List, Mapping, Optional


def get_values(params: Mapping[str, Any], key: str) -> List[str]:
    """All values for ``key`` from a multi-valued query parameter mapping.

    Accepts ``dict[str, list[str]]``, plain ``dict[str, str]`` and
    multi-dicts exposing ``getlist`` (starlette ``QueryParams``).
    """
    if hasattr(params, "getlist"):
        return list(params.getlist(key))
    value = params.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def get_first(params: Mapping[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    values = get_values(params, key)
    return values[0] if values else default


class ParamCursor:
    """Positional placeholder counter for one statement.

    Every placeholder handed out is one higher than the last, so fragments
    compiled against the same cursor can be concatenated without collisions.
    A cursor belongs to a single statement build and is not thread-safe.
    """

    def __init__(self, start: int = 1, args: Optional[List[Any]] = None):
        self.next_index: int = start
        self.args: List[Any] = args if args is not None else []

    def add(self, value: Any) -> str:
        """Bind a value and return its placeholder (e.g. ``$3``)"""
        self.args.append(value)
        placeholder = f"${self.next_index}"
        self.next_index += 1
        return placeholder

    @property
    def last_index(self) -> int:
        """Number of the most recently issued placeholder"""
        return self.next_index - 1

    def __len__(self) -> int:
        return len(self.args)
