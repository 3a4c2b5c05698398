from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _load_version

from .core.array import ConcreteArray
from .core.array_types import ARRAY_TYPE_TAGS, dtype_for, tag_for
from .core.exceptions import (
    ArrayRefError,
    ConfigurationError,
    CyclicReferenceError,
    NumericError,
    ParseError,
    RangeError,
    ShapeMismatchError,
    UnsupportedOperatorError,
)
from .core.expression import build_expression, parse_expression
from .core.function import FunctionReference
from .core.operators import OperatorSpec, lookup_operator, operator_names, register_operator
from .core.properties import PropertyMap
from .core.reference import (
    ArrayReference,
    reference_kind,
    reference_kinds,
    register_reference_kind,
)
from .core.resolver import ResolutionState, Resolver, ResolverConfig
from .core.subset import SubsetReference

try:
    __version__ = _load_version("arrayref")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "ConcreteArray",
    "ArrayReference",
    "SubsetReference",
    "FunctionReference",
    "PropertyMap",
    "Resolver",
    "ResolverConfig",
    "ResolutionState",
    "OperatorSpec",
    "register_operator",
    "lookup_operator",
    "operator_names",
    "register_reference_kind",
    "reference_kind",
    "reference_kinds",
    "build_expression",
    "parse_expression",
    "ARRAY_TYPE_TAGS",
    "dtype_for",
    "tag_for",
    "ArrayRefError",
    "ConfigurationError",
    "RangeError",
    "ShapeMismatchError",
    "NumericError",
    "UnsupportedOperatorError",
    "CyclicReferenceError",
    "ParseError",
    "__version__",
]
