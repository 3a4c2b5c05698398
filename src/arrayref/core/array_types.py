from __future__ import annotations

from typing import Dict, Mapping, Tuple

import numpy as np

from .exceptions import ConfigurationError

# tag -> (numpy dtype, DataType, Precision)
_ARRAY_TYPES: Dict[str, Tuple[np.dtype, str, str]] = {
    "Int8": (np.dtype(np.int8), "Char", "1"),
    "Int16": (np.dtype(np.int16), "Short", "2"),
    "Int32": (np.dtype(np.int32), "Int", "4"),
    "Int64": (np.dtype(np.int64), "Int", "8"),
    "UInt8": (np.dtype(np.uint8), "UChar", "1"),
    "UInt16": (np.dtype(np.uint16), "UShort", "2"),
    "UInt32": (np.dtype(np.uint32), "UInt", "4"),
    "UInt64": (np.dtype(np.uint64), "UInt", "8"),
    "Float32": (np.dtype(np.float32), "Float", "4"),
    "Float64": (np.dtype(np.float64), "Float", "8"),
}

_TAG_BY_DTYPE: Dict[np.dtype, str] = {dtype: tag for tag, (dtype, _, _) in _ARRAY_TYPES.items()}
_TAG_BY_ITEM: Dict[Tuple[str, str], str] = {
    (data_type, precision): tag for tag, (_, data_type, precision) in _ARRAY_TYPES.items()
}

ARRAY_TYPE_TAGS = tuple(_ARRAY_TYPES)


def dtype_for(tag: str) -> np.dtype:
    try:
        return _ARRAY_TYPES[tag][0]
    except KeyError:
        raise ConfigurationError(
            f"Unknown array type '{tag}'. Expected one of: {', '.join(ARRAY_TYPE_TAGS)}"
        ) from None


def tag_for(dtype) -> str:
    resolved = np.dtype(dtype)
    if resolved == np.bool_:
        return "UInt8"
    tag = _TAG_BY_DTYPE.get(resolved)
    if tag is None:
        raise ConfigurationError(f"No array type tag for numpy dtype {resolved}")
    return tag


def item_properties_for(tag: str) -> Dict[str, str]:
    dtype_for(tag)
    _, data_type, precision = _ARRAY_TYPES[tag]
    return {"DataType": data_type, "Precision": precision}


def tag_from_item_properties(props: Mapping[str, str]) -> str:
    data_type = props.get("DataType", "Float")
    precision = props.get("Precision", "4")
    tag = _TAG_BY_ITEM.get((data_type, precision))
    if tag is None:
        raise ConfigurationError(
            f"Unsupported DataType/Precision combination {data_type!r}/{precision!r}"
        )
    return tag
