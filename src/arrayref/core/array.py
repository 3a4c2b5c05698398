from __future__ import annotations

import itertools
import threading
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

import numpy as np

from .array_types import tag_for
from .exceptions import ConfigurationError
from .reference import ArrayReference

if TYPE_CHECKING:
    from .resolver import ResolverConfig

_ARRAY_IDS = itertools.count()


def _freeze(values: Any, *, copy: bool) -> np.ndarray:
    arr = np.array(values, copy=True) if copy else np.asarray(values)
    arr.setflags(write=False)
    return arr


class ConcreteArray:
    """Array value container, either eager or backed by an ``ArrayReference``.

    Eager arrays hold a read-only numpy buffer. Lazy arrays own a reference and
    cache the buffer produced by the first successful resolution together with
    the reference revision it was computed against; the cache is considered
    stale as soon as the reference is reconfigured.
    """

    def __init__(
        self,
        values: Any = None,
        *,
        reference: Optional[ArrayReference] = None,
        name: Optional[str] = None,
    ):
        if values is not None and reference is not None:
            raise ConfigurationError("ConcreteArray takes either values or a reference, not both")
        if reference is not None and not isinstance(reference, ArrayReference):
            raise TypeError(f"Expected an ArrayReference, got {type(reference).__name__}")
        self.name = name or f"array{next(_ARRAY_IDS)}"
        self._lock = threading.RLock()
        self._values: Optional[np.ndarray] = None
        self._reference: Optional[ArrayReference] = reference
        self._cache: Optional[np.ndarray] = None
        self._cache_revision = -1
        if values is not None:
            self._values = _freeze(values, copy=True)

    # State -------------------------------------------------------------------
    @property
    def reference(self) -> Optional[ArrayReference]:
        return self._reference

    @reference.setter
    def reference(self, reference: Optional[ArrayReference]) -> None:
        if reference is not None and not isinstance(reference, ArrayReference):
            raise TypeError(f"Expected an ArrayReference, got {type(reference).__name__}")
        with self._lock:
            self._reference = reference
            self._values = None
            self._cache = None
            self._cache_revision = -1

    def set_values(self, values: Any) -> None:
        frozen = _freeze(values, copy=True)
        with self._lock:
            self._values = frozen
            self._reference = None
            self._cache = None
            self._cache_revision = -1

    @property
    def is_lazy(self) -> bool:
        return self._reference is not None

    @property
    def is_resolved(self) -> bool:
        return self.cached_values() is not None

    def cached_values(self) -> Optional[np.ndarray]:
        """Return the materialized buffer without evaluating anything."""
        with self._lock:
            if self._reference is None:
                return self._values
            if self._cache is not None and self._cache_revision == self._reference.revision:
                return self._cache
            return None

    def invalidate(self) -> None:
        with self._lock:
            self._cache = None
            self._cache_revision = -1

    def _store(self, reference: ArrayReference, revision: int, values: Any) -> np.ndarray:
        frozen = _freeze(values, copy=False)
        with self._lock:
            # reassigned while evaluating: the result belongs to nobody
            if self._reference is reference:
                self._cache = frozen
                self._cache_revision = revision
        return frozen

    # Metadata ----------------------------------------------------------------
    def get_array_type(self) -> Optional[str]:
        if self._reference is not None:
            return self._reference.get_constructed_type()
        if self._values is not None:
            return tag_for(self._values.dtype)
        return None

    def get_dimensions(self) -> Optional[Tuple[int, ...]]:
        if self._reference is not None:
            dims = self._reference.get_constructed_properties().dimensions()
            if dims is not None:
                return dims
            cached = self.cached_values()
            return tuple(cached.shape) if cached is not None else None
        if self._values is not None:
            return tuple(self._values.shape)
        return None

    def dependencies(self) -> List["ConcreteArray"]:
        if self._reference is None:
            return []
        return list(self._reference.dependencies())

    # Values ------------------------------------------------------------------
    def read(self, config: Optional["ResolverConfig"] = None) -> np.ndarray:
        cached = self.cached_values()
        if cached is not None:
            return cached
        from .resolver import Resolver

        return Resolver(config).resolve(self)

    @property
    def values(self) -> np.ndarray:
        return self.read()

    def __array__(self, dtype=None, copy=None):
        arr = self.read()
        if dtype is not None:
            return arr.astype(dtype)
        if copy:
            return arr.copy()
        return arr

    def __repr__(self) -> str:
        if self._reference is not None:
            state = "resolved" if self.is_resolved else "lazy"
            return f"ConcreteArray({self.name!r}, {state}, reference={self._reference!r})"
        if self._values is not None:
            return f"ConcreteArray({self.name!r}, shape={self._values.shape}, dtype={self._values.dtype})"
        return f"ConcreteArray({self.name!r}, empty)"


def infer_array_type(array: ConcreteArray) -> Optional[str]:
    """Declared element type of ``array`` or None when it cannot be named."""
    try:
        return array.get_array_type()
    except ConfigurationError:
        return None
