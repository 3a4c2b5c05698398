from __future__ import annotations

from typing import Dict, Iterable, Iterator, Mapping, MutableMapping, Optional, Tuple

from .exceptions import ConfigurationError

DIMENSIONS_KEY = "Dimensions"


class PropertyMap(MutableMapping[str, str]):
    """String-to-string metadata describing a reference or its result.

    Values are opaque to the map itself; the owning reference kind decides how
    to interpret them (``"Dimensions" -> "10 20 30"``).
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None, **kwargs: str):
        self._items: Dict[str, str] = {}
        if initial is not None:
            self.update(initial)
        if kwargs:
            self.update(kwargs)

    def __getitem__(self, key: str) -> str:
        return self._items[key]

    def __setitem__(self, key: str, value: str) -> None:
        if not isinstance(key, str):
            raise TypeError(f"Property keys must be strings, got {type(key).__name__}")
        if not isinstance(value, str):
            raise TypeError(
                f"Property '{key}' must have a string value, got {type(value).__name__}"
            )
        self._items[key] = value

    def __delitem__(self, key: str) -> None:
        del self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PropertyMap):
            return self._items == other._items
        if isinstance(other, Mapping):
            return self._items == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"PropertyMap({self._items!r})"

    def copy(self) -> "PropertyMap":
        return PropertyMap(self._items)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._items)

    def dimensions(self) -> Optional[Tuple[int, ...]]:
        text = self._items.get(DIMENSIONS_KEY)
        if text is None:
            return None
        return parse_int_list(text, key=DIMENSIONS_KEY)

    def with_dimensions(self, shape: Iterable[int]) -> "PropertyMap":
        updated = self.copy()
        updated[DIMENSIONS_KEY] = format_int_list(shape)
        return updated


def parse_int_list(text: str, *, key: str = "value") -> Tuple[int, ...]:
    try:
        return tuple(int(token) for token in text.split())
    except ValueError as exc:
        raise ConfigurationError(
            f"Property '{key}' must be a space-separated list of integers, got {text!r}"
        ) from exc


def format_int_list(values: Iterable[int]) -> str:
    return " ".join(str(int(value)) for value in values)
