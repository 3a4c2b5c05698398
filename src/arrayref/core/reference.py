from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple, Type, TypeVar

import numpy as np

from .array_types import dtype_for
from .exceptions import ConfigurationError
from .properties import PropertyMap

if TYPE_CHECKING:
    from .array import ConcreteArray
    from .resolver import Resolver

CONSTRUCTED_TYPE_KEY = "ConstructedType"

R = TypeVar("R", bound="ArrayReference")

_REFERENCE_KINDS: Dict[str, Type["ArrayReference"]] = {}


class ArrayReference(ABC):
    """Deferred description of how to compute an array's values.

    A reference carries two kinds of information:

    * the *constructed* type and properties, i.e. metadata describing the array
      that ``read()`` will produce. These are plain attributes and never cause
      evaluation, so writers and schedulers can inspect a computed array for
      free.
    * the variant configuration (subset selection, operator and operands, ...)
      exposed to serializers through ``get_item_properties()``.

    The constructed metadata a caller gives is kept apart from the effective
    metadata returned by the getters; variants fill in what the caller left
    out through ``_effective_metadata()``, which runs again after every
    configuration change.

    Every setter bumps ``revision``. The owning ``ConcreteArray`` remembers the
    revision its cached buffer was computed against and treats a mismatch as a
    stale cache, which is how configuration changes after resolution force the
    next request to call ``read()`` again.

    ``read()`` must be referentially transparent and must not cache: caching
    is the resolver's job.
    """

    item_tag = "ArrayReference"

    def __init__(
        self,
        constructed_type: Optional[str] = None,
        constructed_properties: Optional[Mapping[str, str]] = None,
    ):
        self._lock = threading.Lock()
        self._revision = 0
        self._given_type: Optional[str] = _check_type_tag(constructed_type)
        self._given_properties = PropertyMap(constructed_properties)
        self._constructed_type, self._constructed_properties = self._effective_metadata()

    # Metadata ----------------------------------------------------------------
    @property
    def revision(self) -> int:
        return self._revision

    def get_constructed_type(self) -> Optional[str]:
        return self._constructed_type

    def set_constructed_type(self, tag: Optional[str]) -> None:
        tag = _check_type_tag(tag)
        with self._lock:
            self._given_type = tag
            self._reconfigured()

    def get_constructed_properties(self) -> PropertyMap:
        return self._constructed_properties.copy()

    def set_constructed_properties(self, properties: Mapping[str, str]) -> None:
        replacement = PropertyMap(properties)
        with self._lock:
            self._given_properties = replacement
            self._reconfigured()

    def get_item_properties(self) -> PropertyMap:
        props = self._constructed_properties.copy()
        if self._constructed_type is not None:
            props[CONSTRUCTED_TYPE_KEY] = self._constructed_type
        return props

    # Evaluation --------------------------------------------------------------
    @abstractmethod
    def read(self, resolver: Optional["Resolver"] = None) -> np.ndarray:
        """Compute and return a new buffer typed per the constructed type."""

    def dependencies(self) -> List["ConcreteArray"]:
        """Arrays that ``read()`` will request through the resolver."""
        return []

    # Helpers for variants ----------------------------------------------------
    def _reconfigured(self) -> None:
        """Runs under the lock after every configuration change."""
        self._constructed_type, self._constructed_properties = self._effective_metadata()
        self._revision += 1

    def _effective_metadata(self) -> Tuple[Optional[str], PropertyMap]:
        """Constructed type and properties as the getters should report them.

        Variants override this to infer whatever the caller did not give from
        their current configuration. It must not evaluate anything.
        """
        return self._given_type, self._given_properties.copy()

    def _require_dtype(self) -> np.dtype:
        if self._constructed_type is None:
            raise ConfigurationError(
                f"{type(self).__name__} has no constructed type; "
                "call set_constructed_type() before reading"
            )
        return dtype_for(self._constructed_type)

    @staticmethod
    def _resolver(resolver: Optional["Resolver"]) -> "Resolver":
        if resolver is not None:
            return resolver
        from .resolver import Resolver

        return Resolver()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(type={self._constructed_type!r}, "
            f"properties={self._constructed_properties.to_dict()!r})"
        )


def _check_type_tag(tag: Optional[str]) -> Optional[str]:
    if tag is not None and not isinstance(tag, str):
        raise TypeError(f"Constructed type must be a string tag, got {type(tag).__name__}")
    return tag


def register_reference_kind(cls: Type[R]) -> Type[R]:
    """Class decorator making a reference variant discoverable by its item tag."""
    existing = _REFERENCE_KINDS.get(cls.item_tag)
    if existing is not None and existing is not cls:
        raise ConfigurationError(
            f"Reference kind '{cls.item_tag}' already registered by {existing.__name__}"
        )
    _REFERENCE_KINDS[cls.item_tag] = cls
    return cls


def reference_kind(tag: str) -> Type["ArrayReference"]:
    try:
        return _REFERENCE_KINDS[tag]
    except KeyError:
        known = ", ".join(sorted(_REFERENCE_KINDS)) or "-"
        raise ConfigurationError(f"Unknown reference kind '{tag}' (known: {known})") from None


def reference_kinds() -> Dict[str, Type["ArrayReference"]]:
    return dict(_REFERENCE_KINDS)
