"""Query string parameters as the validator's ``query`` input."""

from collections.abc import Iterator, Mapping
from urllib.parse import parse_qsl


class QueryParams(Mapping[str, str]):
    """Read-only query parameters.

    A key sent more than once (``?tag=a&tag=b``) maps to its first value,
    which is what a ``query`` schema validates. ``get_list`` keeps them all.
    Blank values (``?q=``) are kept as ``""`` so the validator can treat
    them as absent.
    """

    __slots__ = ("_first", "_raw", "_values")

    def __init__(self, query_string: bytes = b"") -> None:
        self._raw = query_string
        values: dict[str, list[str]] = {}
        for key, value in parse_qsl(query_string.decode("latin-1"), keep_blank_values=True):
            values.setdefault(key, []).append(value)
        self._values = values
        self._first = {key: items[0] for key, items in values.items()}

    def __getitem__(self, key: str) -> str:
        return self._first[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._first)

    def __len__(self) -> int:
        return len(self._first)

    def __repr__(self) -> str:
        return f"QueryParams({self._first!r})"

    def get_list(self, key: str) -> list[str]:
        """All values for *key*, in query string order."""
        return list(self._values.get(key, ()))

    @property
    def raw(self) -> bytes:
        """The query string exactly as received."""
        return self._raw
