from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import (
    ConfigurationError,
    NumericError,
    ShapeMismatchError,
    UnsupportedOperatorError,
)

Shape = Tuple[int, ...]

SHAPE_RULES = {"same", "same_or_scalar", "scalar", "concat"}
RESULT_KINDS = {"promote", "float", "uint8"}


@dataclass(frozen=True)
class OperatorSpec:
    """Declarative description of a function operator.

    ``shape_rule`` is the operator's broadcasting contract:

    * ``"same"``: every operand has the same shape, result has that shape.
    * ``"same_or_scalar"``: as ``"same"`` but 0-d operands broadcast.
    * ``"scalar"``: any shapes, result is a one-element array.
    * ``"concat"``: any shapes, result is the flattened operands end to end.

    ``domain`` returns a boolean mask (broadcast to the result shape) marking
    inputs outside the operator's domain, checked before the operator runs.
    """

    name: str
    function: Callable[..., np.ndarray]
    min_operands: int = 1
    max_operands: Optional[int] = None
    shape_rule: str = "same_or_scalar"
    result_kind: str = "promote"
    domain: Optional[Callable[..., np.ndarray]] = None
    domain_message: str = "argument outside the operator's domain"

    def __post_init__(self) -> None:
        if self.shape_rule not in SHAPE_RULES:
            raise ValueError(f"Unsupported shape rule: {self.shape_rule}")
        if self.result_kind not in RESULT_KINDS:
            raise ValueError(f"Unsupported result kind: {self.result_kind}")
        if self.min_operands < 1:
            raise ValueError("Operators need at least one operand")

    def check_arity(self, count: int) -> None:
        if count < self.min_operands or (
            self.max_operands is not None and count > self.max_operands
        ):
            if self.max_operands == self.min_operands:
                expected = f"exactly {self.min_operands}"
            elif self.max_operands is None:
                expected = f"at least {self.min_operands}"
            else:
                expected = f"{self.min_operands} to {self.max_operands}"
            raise ConfigurationError(
                f"Operator '{self.name}' takes {expected} operand(s), got {count}"
            )

    def result_shape(self, shapes: Sequence[Shape]) -> Shape:
        shapes = [tuple(int(dim) for dim in shape) for shape in shapes]
        if self.shape_rule == "scalar":
            return (1,)
        if self.shape_rule == "concat":
            return (int(sum(int(np.prod(shape)) for shape in shapes)),)
        candidates = shapes
        if self.shape_rule == "same_or_scalar":
            candidates = [shape for shape in shapes if shape != ()]
            if not candidates:
                return ()
        first = candidates[0]
        if any(shape != first for shape in candidates[1:]):
            listed = ", ".join(str(list(shape)) for shape in shapes)
            raise ShapeMismatchError(
                f"Operator '{self.name}' requires operands of identical shape, got {listed}",
                shapes=shapes,
            )
        return first

    def result_dtype(self, dtypes: Sequence[np.dtype]) -> np.dtype:
        if self.result_kind == "uint8":
            return np.dtype(np.uint8)
        promoted = np.result_type(*dtypes) if dtypes else np.dtype(np.float64)
        if promoted == np.bool_:
            promoted = np.dtype(np.uint8)
        if self.result_kind == "float" and promoted.kind != "f":
            return np.dtype(np.float64)
        return promoted

    def apply(
        self,
        operands: Sequence[np.ndarray],
        dtype: Optional[np.dtype] = None,
    ) -> np.ndarray:
        """Run the operator and cast the result to ``dtype`` when given.

        Integer results are range checked against the target type: a value the
        type cannot hold raises ``NumericError`` at its first index instead of
        wrapping around.
        """
        arrays = [np.asarray(operand) for operand in operands]
        self.check_arity(len(arrays))
        shape = self.result_shape([arr.shape for arr in arrays])
        if self.domain is not None and self.shape_rule in {"same", "same_or_scalar"}:
            with np.errstate(all="ignore"):
                invalid = np.broadcast_to(np.asarray(self.domain(*arrays), dtype=bool), shape)
            _raise_at_first(invalid, f"Operator '{self.name}': {self.domain_message}")
        with np.errstate(all="ignore"):
            result = np.asarray(self.function(*arrays))
        _check_finite(self, result, arrays)
        target = result.dtype if dtype is None else np.dtype(dtype)
        if target.kind in "iu" and self.result_kind != "uint8":
            _check_integer_range(self, arrays, target)
        if dtype is None:
            return result
        return result.astype(target)


def _raise_at_first(mask: np.ndarray, message: str) -> None:
    if not mask.any():
        return
    index = tuple(int(i) for i in np.argwhere(mask)[0])
    raise NumericError(message, index=index)


def _nonfinite(arr: np.ndarray) -> np.ndarray:
    if arr.dtype.kind in "fc":
        return ~np.isfinite(arr)
    return np.zeros(arr.shape, dtype=bool)


def _check_integer_range(
    spec: OperatorSpec, operands: List[np.ndarray], target: np.dtype
) -> None:
    exact = None
    if all(arr.dtype.kind in "biu" for arr in operands):
        # Python ints never wrap
        try:
            exact = np.asarray(spec.function(*[arr.astype(object) for arr in operands]))
        except TypeError:
            exact = None
    if exact is None:
        with np.errstate(all="ignore"):
            exact = np.asarray(
                spec.function(*[arr.astype(np.float64) for arr in operands]),
                dtype=np.float64,
            )
    info = np.iinfo(target)
    outside = np.asarray((exact < info.min) | (exact > info.max), dtype=bool)
    if exact.dtype.kind == "f":
        outside |= ~np.isfinite(exact)
    _raise_at_first(outside, f"Operator '{spec.name}' result does not fit {target}")


def _check_finite(spec: OperatorSpec, result: np.ndarray, operands: List[np.ndarray]) -> None:
    if result.dtype.kind not in "fc":
        return
    produced = ~np.isfinite(result)
    if not produced.any():
        return
    # non-finite inputs legitimately propagate; only newly produced values are errors
    if spec.shape_rule in {"same", "same_or_scalar"}:
        inherited = np.zeros(result.shape, dtype=bool)
        for arr in operands:
            inherited |= np.broadcast_to(_nonfinite(arr), result.shape)
    elif spec.shape_rule == "concat":
        inherited = np.concatenate([_nonfinite(arr).ravel() for arr in operands])
    else:
        any_input = any(_nonfinite(arr).any() for arr in operands)
        inherited = np.full(result.shape, any_input, dtype=bool)
    _raise_at_first(produced & ~inherited, f"Operator '{spec.name}' produced a non-finite value")


# Built-in operator implementations ------------------------------------------------
def _flatten(operands: Sequence[np.ndarray]) -> np.ndarray:
    if not operands:
        return np.zeros((0,))
    return np.concatenate([np.ravel(arr) for arr in operands])


def _require_elements(name: str, values: np.ndarray) -> None:
    if values.size == 0:
        raise NumericError(f"Operator '{name}' is undefined for an empty operand set")


def _reduce_sum(*operands: np.ndarray) -> np.ndarray:
    return np.array([_flatten(operands).sum()])


def _reduce_average(*operands: np.ndarray) -> np.ndarray:
    values = _flatten(operands)
    _require_elements("average", values)
    return np.array([values.sum() / float(values.size)])


def _reduce_min(*operands: np.ndarray) -> np.ndarray:
    values = _flatten(operands)
    _require_elements("min", values)
    return np.array([values.min()])


def _reduce_max(*operands: np.ndarray) -> np.ndarray:
    values = _flatten(operands)
    _require_elements("max", values)
    return np.array([values.max()])


def _across(reducer: Callable[..., np.ndarray]) -> Callable[..., np.ndarray]:
    def apply(*operands: np.ndarray) -> np.ndarray:
        return reducer(np.stack(operands), axis=0)

    return apply


def _join(*operands: np.ndarray) -> np.ndarray:
    return _flatten(operands)


def _compare(ufunc: Callable[..., np.ndarray]) -> Callable[..., np.ndarray]:
    def apply(left: np.ndarray, right: np.ndarray) -> np.ndarray:
        return ufunc(left, right).astype(np.uint8)

    return apply


def _power(base: np.ndarray, exponent: np.ndarray) -> np.ndarray:
    return np.power(base.astype(np.float64), exponent)


def _zero_divisor(_numerator: np.ndarray, divisor: np.ndarray) -> np.ndarray:
    return divisor == 0


_OPERATORS: Dict[str, OperatorSpec] = {}
_ALIASES: Dict[str, str] = {
    "ave": "average",
    "avg": "average",
    "mean": "average",
    "neg": "negate",
}


def register_operator(spec: OperatorSpec, *, replace: bool = False) -> OperatorSpec:
    key = spec.name.lower()
    if key in _OPERATORS and not replace:
        raise ConfigurationError(f"Operator '{spec.name}' is already registered")
    _OPERATORS[key] = spec
    return spec


def lookup_operator(name: str) -> OperatorSpec:
    key = str(name).lower()
    key = _ALIASES.get(key, key)
    spec = _OPERATORS.get(key)
    if spec is None:
        raise UnsupportedOperatorError(name)
    return spec


def operator_names() -> List[str]:
    return sorted(_OPERATORS)


def _binary(name: str, function: Callable[..., np.ndarray], **kwargs) -> OperatorSpec:
    return OperatorSpec(name, function, min_operands=2, max_operands=2, **kwargs)


def _unary(name: str, function: Callable[..., np.ndarray], **kwargs) -> OperatorSpec:
    return OperatorSpec(name, function, min_operands=1, max_operands=1, **kwargs)


for _spec in (
    _binary("add", np.add),
    _binary("subtract", np.subtract),
    _binary("multiply", np.multiply),
    _binary(
        "divide",
        np.true_divide,
        result_kind="float",
        domain=_zero_divisor,
        domain_message="division by zero",
    ),
    _binary("power", _power, result_kind="float"),
    _binary("equal", _compare(np.equal), result_kind="uint8"),
    _binary("not_equal", _compare(np.not_equal), result_kind="uint8"),
    _binary("less", _compare(np.less), result_kind="uint8"),
    _binary("less_equal", _compare(np.less_equal), result_kind="uint8"),
    _binary("greater", _compare(np.greater), result_kind="uint8"),
    _binary("greater_equal", _compare(np.greater_equal), result_kind="uint8"),
    _unary("negate", np.negative),
    _unary("abs", np.abs),
    _unary(
        "sqrt",
        np.sqrt,
        result_kind="float",
        domain=lambda x: x < 0,
        domain_message="square root of a negative value",
    ),
    _unary("exp", np.exp, result_kind="float"),
    _unary(
        "log",
        np.log,
        result_kind="float",
        domain=lambda x: x <= 0,
        domain_message="logarithm of a non-positive value",
    ),
    _unary("sin", np.sin, result_kind="float"),
    _unary("cos", np.cos, result_kind="float"),
    _unary("tan", np.tan, result_kind="float"),
    _unary(
        "asin",
        np.arcsin,
        result_kind="float",
        domain=lambda x: np.abs(x) > 1,
        domain_message="arcsine argument outside [-1, 1]",
    ),
    _unary(
        "acos",
        np.arccos,
        result_kind="float",
        domain=lambda x: np.abs(x) > 1,
        domain_message="arccosine argument outside [-1, 1]",
    ),
    _unary("atan", np.arctan, result_kind="float"),
    OperatorSpec("sum", _reduce_sum, shape_rule="scalar"),
    OperatorSpec("average", _reduce_average, shape_rule="scalar", result_kind="float"),
    OperatorSpec("min", _reduce_min, shape_rule="scalar"),
    OperatorSpec("max", _reduce_max, shape_rule="scalar"),
    OperatorSpec("sum_across", _across(np.sum), shape_rule="same"),
    OperatorSpec("average_across", _across(np.mean), shape_rule="same", result_kind="float"),
    OperatorSpec("min_across", _across(np.min), shape_rule="same"),
    OperatorSpec("max_across", _across(np.max), shape_rule="same"),
    OperatorSpec("join", _join, shape_rule="concat"),
):
    register_operator(_spec)
del _spec
