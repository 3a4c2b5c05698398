from __future__ import annotations

from typing import TYPE_CHECKING, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .array import ConcreteArray, infer_array_type
from .array_types import dtype_for, tag_for
from .exceptions import ConfigurationError, ShapeMismatchError, UnsupportedOperatorError
from .operators import OperatorSpec, lookup_operator
from .properties import DIMENSIONS_KEY, PropertyMap
from .reference import CONSTRUCTED_TYPE_KEY, ArrayReference, register_reference_kind

if TYPE_CHECKING:
    from .resolver import Resolver

OPERATOR_KEY = "Operator"
VARIABLES_KEY = "VariableNames"
VARIABLE_SEPARATOR = "|"


@register_reference_kind
class FunctionReference(ArrayReference):
    """Operator applied to an ordered list of operand arrays.

    Operands may themselves be lazy. When the constructed type or the
    ``Dimensions`` property are not given they are inferred from the operands'
    declared metadata, which never evaluates anything; whatever cannot be
    inferred is left unset and reported when ``read()`` runs. Inferred metadata
    follows later changes to the operator and operands; an operand whose own
    metadata changes is only picked up on the next reconfiguration.
    """

    item_tag = "Function"

    def __init__(
        self,
        operator: str,
        operands: Sequence[ConcreteArray],
        *,
        constructed_type: Optional[str] = None,
        constructed_properties: Optional[Mapping[str, str]] = None,
    ):
        self._operator = str(operator)
        self._operands: List[ConcreteArray] = list(operands)
        super().__init__(constructed_type, constructed_properties)

    @classmethod
    def from_item_properties(
        cls,
        props: Mapping[str, str],
        variables: Mapping[str, ConcreteArray],
    ) -> "FunctionReference":
        if OPERATOR_KEY not in props:
            raise ConfigurationError(f"Function properties missing {OPERATOR_KEY}")
        names = [name for name in props.get(VARIABLES_KEY, "").split(VARIABLE_SEPARATOR) if name]
        unknown = [name for name in names if name not in variables]
        if unknown:
            raise ConfigurationError(f"Function refers to undefined arrays: {', '.join(unknown)}")
        constructed = {
            key: value
            for key, value in props.items()
            if key not in {OPERATOR_KEY, VARIABLES_KEY, CONSTRUCTED_TYPE_KEY}
        }
        return cls(
            props[OPERATOR_KEY],
            [variables[name] for name in names],
            constructed_type=props.get(CONSTRUCTED_TYPE_KEY),
            constructed_properties=constructed,
        )

    # Configuration -------------------------------------------------------------
    @property
    def operator(self) -> str:
        return self._operator

    def set_operator(self, operator: str) -> None:
        with self._lock:
            self._operator = str(operator)
            self._reconfigured()

    @property
    def operands(self) -> Tuple[ConcreteArray, ...]:
        return tuple(self._operands)

    def set_operands(self, operands: Sequence[ConcreteArray]) -> None:
        with self._lock:
            self._operands = list(operands)
            self._reconfigured()

    def get_item_properties(self) -> PropertyMap:
        props = super().get_item_properties()
        props[OPERATOR_KEY] = self._operator
        props[VARIABLES_KEY] = VARIABLE_SEPARATOR.join(op.name for op in self._operands)
        return props

    def dependencies(self) -> List[ConcreteArray]:
        return list(self._operands)

    # Evaluation ----------------------------------------------------------------
    def read(self, resolver: Optional["Resolver"] = None) -> np.ndarray:
        spec = lookup_operator(self._operator)
        spec.check_arity(len(self._operands))
        dtype = self._require_dtype()
        resolver = self._resolver(resolver)
        values = [resolver.resolve(operand) for operand in self._operands]
        return spec.apply(values, dtype=dtype)

    # Metadata inference ----------------------------------------------------------
    def _effective_metadata(self) -> Tuple[Optional[str], PropertyMap]:
        tag, props = super()._effective_metadata()
        if tag is None:
            tag = self._infer_type()
        if DIMENSIONS_KEY not in props:
            shape = self._infer_shape()
            if shape is not None:
                props = props.with_dimensions(shape)
        return tag, props

    def _spec(self) -> Optional[OperatorSpec]:
        try:
            return lookup_operator(self._operator)
        except UnsupportedOperatorError:
            return None

    def _infer_type(self) -> Optional[str]:
        spec = self._spec()
        if spec is None:
            return None
        tags = [infer_array_type(operand) for operand in self._operands]
        if any(tag is None for tag in tags):
            return None
        try:
            return tag_for(spec.result_dtype([dtype_for(tag) for tag in tags]))
        except ConfigurationError:
            return None

    def _infer_shape(self) -> Optional[Tuple[int, ...]]:
        spec = self._spec()
        if spec is None or not self._operands:
            return None
        try:
            shapes = [operand.get_dimensions() for operand in self._operands]
            if any(shape is None for shape in shapes):
                return None
            return spec.result_shape(shapes)
        except (ConfigurationError, ShapeMismatchError):
            return None

    def __repr__(self) -> str:
        names = ", ".join(op.name for op in self._operands)
        return f"FunctionReference({self._operator!r}, [{names}], type={self._constructed_type!r})"
