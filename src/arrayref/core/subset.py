from __future__ import annotations

from typing import TYPE_CHECKING, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .array import ConcreteArray, infer_array_type
from .exceptions import ConfigurationError, RangeError
from .properties import DIMENSIONS_KEY, PropertyMap, format_int_list, parse_int_list
from .reference import CONSTRUCTED_TYPE_KEY, ArrayReference, register_reference_kind

if TYPE_CHECKING:
    from .resolver import Resolver

STARTS_KEY = "SubsetStarts"
STRIDES_KEY = "SubsetStrides"
COUNTS_KEY = "SubsetDimensions"


@register_reference_kind
class SubsetReference(ArrayReference):
    """Strided hyperslab of a single source array.

    The selection is recorded as given; it is only checked against the source
    extent when ``read()`` runs, so a parser can build the graph before the
    source's shape is known.
    """

    item_tag = "Subset"

    def __init__(
        self,
        source: "ConcreteArray",
        start: Sequence[int],
        stride: Sequence[int],
        count: Sequence[int],
        *,
        constructed_type: Optional[str] = None,
        constructed_properties: Optional[Mapping[str, str]] = None,
    ):
        self._source = source
        self._start, self._stride, self._count = _as_descriptor(start, stride, count)
        super().__init__(constructed_type, constructed_properties)

    @classmethod
    def from_item_properties(
        cls,
        props: Mapping[str, str],
        source: "ConcreteArray",
    ) -> "SubsetReference":
        missing = [key for key in (STARTS_KEY, STRIDES_KEY, COUNTS_KEY) if key not in props]
        if missing:
            raise ConfigurationError(f"Subset properties missing {', '.join(missing)}")
        constructed = {
            key: value
            for key, value in props.items()
            if key not in {STARTS_KEY, STRIDES_KEY, COUNTS_KEY, CONSTRUCTED_TYPE_KEY}
        }
        return cls(
            source,
            parse_int_list(props[STARTS_KEY], key=STARTS_KEY),
            parse_int_list(props[STRIDES_KEY], key=STRIDES_KEY),
            parse_int_list(props[COUNTS_KEY], key=COUNTS_KEY),
            constructed_type=props.get(CONSTRUCTED_TYPE_KEY),
            constructed_properties=constructed,
        )

    # Configuration -------------------------------------------------------------
    @property
    def source(self) -> "ConcreteArray":
        return self._source

    def set_source(self, source: "ConcreteArray") -> None:
        with self._lock:
            self._source = source
            self._reconfigured()

    @property
    def start(self) -> Tuple[int, ...]:
        return self._start

    @property
    def stride(self) -> Tuple[int, ...]:
        return self._stride

    @property
    def count(self) -> Tuple[int, ...]:
        return self._count

    def set_selection(
        self,
        start: Sequence[int],
        stride: Sequence[int],
        count: Sequence[int],
    ) -> None:
        descriptor = _as_descriptor(start, stride, count)
        with self._lock:
            self._start, self._stride, self._count = descriptor
            self._reconfigured()

    def _effective_metadata(self) -> Tuple[Optional[str], PropertyMap]:
        # type follows the source and Dimensions the selection unless given
        tag, props = super()._effective_metadata()
        if tag is None:
            tag = infer_array_type(self._source)
        if DIMENSIONS_KEY not in props:
            props = props.with_dimensions(self._count)
        return tag, props

    def get_item_properties(self) -> PropertyMap:
        props = super().get_item_properties()
        props[STARTS_KEY] = format_int_list(self._start)
        props[STRIDES_KEY] = format_int_list(self._stride)
        props[COUNTS_KEY] = format_int_list(self._count)
        return props

    def dependencies(self) -> List["ConcreteArray"]:
        return [self._source]

    # Evaluation ----------------------------------------------------------------
    def read(self, resolver: Optional["Resolver"] = None) -> np.ndarray:
        dtype = self._require_dtype()
        source = self._resolver(resolver).resolve(self._source)
        indices = self._selection_indices(source.shape)
        return np.array(source[np.ix_(*indices)], dtype=dtype)

    def _selection_indices(self, extent: Tuple[int, ...]) -> List[np.ndarray]:
        ndim = len(extent)
        if not (len(self._start) == len(self._stride) == len(self._count) == ndim):
            raise ConfigurationError(
                f"Subset descriptor has {len(self._start)}/{len(self._stride)}/"
                f"{len(self._count)} start/stride/count entries for a {ndim}-d source"
            )
        indices: List[np.ndarray] = []
        for dim, (start, stride, count, size) in enumerate(
            zip(self._start, self._stride, self._count, extent)
        ):
            if start < 0 or stride < 0 or count < 0:
                raise RangeError(
                    f"Subset dimension {dim}: start/stride/count must be non-negative, "
                    f"got {start}/{stride}/{count}",
                    dimension=dim,
                )
            if count > 0:
                last = start + stride * (count - 1)
                if last >= size:
                    raise RangeError(
                        f"Subset dimension {dim}: last index {last} "
                        f"(start={start}, stride={stride}, count={count}) "
                        f"exceeds source extent {size}",
                        dimension=dim,
                    )
            indices.append(start + stride * np.arange(count, dtype=np.intp))
        return indices


def _as_descriptor(
    start: Sequence[int],
    stride: Sequence[int],
    count: Sequence[int],
) -> Tuple[Tuple[int, ...], Tuple[int, ...], Tuple[int, ...]]:
    return (
        tuple(int(value) for value in start),
        tuple(int(value) for value in stride),
        tuple(int(value) for value in count),
    )
