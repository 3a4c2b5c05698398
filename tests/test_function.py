import numpy as np
import pytest

from arrayref import (
    ConcreteArray,
    ConfigurationError,
    FunctionReference,
    NumericError,
    OperatorSpec,
    ShapeMismatchError,
    UnsupportedOperatorError,
    lookup_operator,
    reference_kind,
    register_operator,
)
from tests._support import counting_array


def _eager(values, name, dtype=None):
    return ConcreteArray(np.asarray(values, dtype=dtype), name=name)


def _function(operator, *operands, name="result", **kwargs):
    return ConcreteArray(
        reference=FunctionReference(operator, list(operands), **kwargs), name=name
    )


def test_elementwise_add():
    result = _function("add", _eager([1, 2, 3], "a"), _eager([10, 20, 30], "b"))
    assert result.read().tolist() == [11, 22, 33]


def test_elementwise_shape_mismatch():
    result = _function("add", _eager([1, 2, 3], "a"), _eager([1, 2, 3, 4], "b"))
    assert result.get_dimensions() is None
    with pytest.raises(ShapeMismatchError, match=r"\[3\], \[4\]") as excinfo:
        result.read()
    assert excinfo.value.shapes == [(3,), (4,)]
    assert excinfo.value.array == "result"


def test_zero_dimensional_operands_broadcast():
    result = _function("multiply", _eager([1, 2, 3], "a"), _eager(2, "two"))
    assert result.get_dimensions() == (3,)
    assert result.read().tolist() == [2, 4, 6]


def test_division_by_zero_reports_index():
    result = _function("divide", _eager([1, 2, 3], "a"), _eager([1, 0, 2], "b"))
    with pytest.raises(NumericError, match="division by zero") as excinfo:
        result.read()
    assert excinfo.value.index == (1,)
    assert not result.is_resolved


def test_integer_division_yields_float():
    result = _function("divide", _eager([1, 3], "a"), _eager([2, 2], "b"))
    assert result.get_array_type() == "Float64"
    assert result.read().tolist() == [0.5, 1.5]


def test_domain_errors_for_unary_operators():
    with pytest.raises(NumericError, match="square root") as excinfo:
        _function("sqrt", _eager([4.0, 1.0, -1.0], "a")).read()
    assert excinfo.value.index == (2,)
    with pytest.raises(NumericError, match="logarithm"):
        _function("log", _eager([[1.0, 0.0]], "a")).read()


def test_overflow_is_a_numeric_error():
    big = _eager([1.0, 3.0e38], "big", dtype=np.float32)
    result = _function("multiply", big, _eager(np.float32(10.0), "ten"))
    with pytest.raises(NumericError, match="non-finite") as excinfo:
        result.read()
    assert excinfo.value.index == (1,)


def test_non_finite_inputs_propagate_without_error():
    result = _function("add", _eager([np.nan, 1.0], "a"), _eager([1.0, 1.0], "b"))
    values = result.read()
    assert np.isnan(values[0])
    assert values[1] == 2.0


def test_unknown_operator_fails_at_read_naming_the_tag():
    reference = FunctionReference("frobnicate", [_eager([1], "a")])
    assert reference.get_constructed_type() is None
    reference.set_constructed_type("Int64")
    with pytest.raises(UnsupportedOperatorError, match="frobnicate") as excinfo:
        reference.read()
    assert excinfo.value.operator == "frobnicate"


def test_arity_is_enforced():
    a = _eager([1], "a")
    with pytest.raises(ConfigurationError, match="exactly 2"):
        _function("add", a, a, a).read()
    with pytest.raises(ConfigurationError, match="at least 1"):
        _function("sum", constructed_type="Float64").read()


def test_scalar_reductions_over_all_operands():
    a = _eager([1, 2], "a")
    b = _eager([3], "b")
    assert _function("sum", a, b).read().tolist() == [6]
    assert _function("average", a, b).read().tolist() == [2.0]
    assert _function("max", a, b).read().tolist() == [3]
    assert _function("min", a, b).read().tolist() == [1]
    assert _function("sum", a, b).get_dimensions() == (1,)


def test_empty_average_is_a_numeric_error():
    empty = _eager(np.zeros(0), "empty")
    with pytest.raises(NumericError, match="empty operand set"):
        _function("average", empty).read()


def test_reductions_across_operands():
    a = _eager([1, 2], "a")
    b = _eager([3, 6], "b")
    assert _function("sum_across", a, b).read().tolist() == [4, 8]
    assert _function("average_across", a, b).read().tolist() == [2.0, 4.0]
    assert _function("max_across", a, b).read().tolist() == [3, 6]
    with pytest.raises(ShapeMismatchError):
        _function("min_across", a, _eager([1, 2, 3], "c")).read()


def test_join_and_comparisons():
    a = _eager([1, 2], "a")
    b = _eager([[3], [4]], "b")
    assert _function("join", a, b).read().tolist() == [1, 2, 3, 4]
    less = _function("less", a, _eager([2, 2], "c"))
    assert less.get_array_type() == "UInt8"
    assert less.read().tolist() == [1, 0]


def test_metadata_available_without_evaluating_failing_operand():
    x = _eager([1.0, 0.0], "x")
    bad = _function("divide", _eager([1.0, 1.0], "ones"), x, name="bad")
    wrapper = FunctionReference("add", [bad, bad])
    assert wrapper.get_constructed_type() == "Float64"
    assert wrapper.get_constructed_properties().dimensions() == (2,)
    assert not bad.is_resolved
    with pytest.raises(NumericError) as excinfo:
        wrapper.read()
    assert excinfo.value.index == (1,)
    assert excinfo.value.array == "bad"


def test_operands_resolve_left_to_right_once_each():
    journal = []
    first = counting_array([1.0], "first", journal=journal, label="first")
    second = counting_array([2.0], "second", journal=journal, label="second")
    result = _function("sum_across", first, second, first)
    assert result.read().tolist() == [4.0]
    assert journal == ["first", "second"]


def test_operator_change_invalidates_result():
    result = _function("add", _eager([1, 2], "a"), _eager([3, 4], "b"))
    assert result.read().tolist() == [4, 6]
    result.reference.set_operator("multiply")
    assert not result.is_resolved
    assert result.read().tolist() == [3, 8]


def test_operator_change_updates_inferred_type():
    result = _function("add", _eager([1, 3], "a"), _eager([2, 2], "b"))
    assert result.get_array_type() == "Int64"
    result.reference.set_operator("divide")
    assert result.get_array_type() == "Float64"
    assert result.read().tolist() == [0.5, 1.5]


def test_operand_change_updates_inferred_dimensions():
    result = _function("negate", _eager([0, 1, 2], "a"))
    assert result.get_dimensions() == (3,)
    result.reference.set_operands([_eager(np.arange(5), "b")])
    assert result.get_dimensions() == (5,)
    assert result.read().shape == (5,)


def test_given_metadata_survives_reconfiguration():
    result = _function(
        "add",
        _eager([1, 3], "a"),
        _eager([2, 2], "b"),
        constructed_type="Float32",
        constructed_properties={"Dimensions": "2"},
    )
    result.reference.set_operator("divide")
    result.reference.set_operands([_eager([1, 3, 5], "c"), _eager([2, 2, 2], "d")])
    assert result.get_array_type() == "Float32"
    assert result.get_dimensions() == (2,)

    # clearing the type hands it back to inference
    result.reference.set_constructed_type(None)
    assert result.get_array_type() == "Float64"
    result.reference.set_constructed_properties({"Units": "m"})
    assert result.get_dimensions() == (3,)
    assert result.reference.get_constructed_properties()["Units"] == "m"


def test_integer_overflow_is_a_numeric_error():
    a = _eager([1, 100], "a", dtype=np.int8)
    result = _function("add", a, _eager([1, 100], "b", dtype=np.int8))
    assert result.get_array_type() == "Int8"
    with pytest.raises(NumericError, match="does not fit int8") as excinfo:
        result.read()
    assert excinfo.value.index == (1,)
    assert not result.is_resolved


def test_integer_reduction_overflowing_the_constructed_type():
    total = _function("sum", _eager([100, 100], "a", dtype=np.int8))
    assert total.get_array_type() == "Int8"
    with pytest.raises(NumericError, match="does not fit int8") as excinfo:
        total.read()
    assert excinfo.value.index == (0,)

    total.reference.set_constructed_type("Int16")
    assert total.read().tolist() == [200]


def test_cast_to_a_narrower_integer_type_is_checked():
    wide = _function(
        "multiply", _eager([2, 300], "a"), _eager(2, "two"), constructed_type="UInt8"
    )
    with pytest.raises(NumericError, match="does not fit uint8") as excinfo:
        wide.read()
    assert excinfo.value.index == (1,)
    negative = _function("negate", _eager([0, 5], "b"), constructed_type="UInt16")
    with pytest.raises(NumericError) as excinfo:
        negative.read()
    assert excinfo.value.index == (1,)


def test_custom_operator_registration():
    register_operator(
        OperatorSpec("test_clip_unit", lambda x: np.clip(x, 0, 1), max_operands=1),
        replace=True,
    )
    assert lookup_operator("TEST_CLIP_UNIT").name == "test_clip_unit"
    result = _function("test_clip_unit", _eager([-1.0, 0.5, 2.0], "a"))
    assert result.read().tolist() == [0.0, 0.5, 1.0]


def test_aliases_resolve_to_registered_operators():
    assert lookup_operator("AVE").name == "average"
    with pytest.raises(UnsupportedOperatorError):
        lookup_operator("nope")


def test_item_properties_and_rebuild():
    a = _eager([1, 2], "a")
    b = _eager([3, 4], "b")
    reference = FunctionReference("subtract", [a, b])
    props = reference.get_item_properties()
    assert props["Operator"] == "subtract"
    assert props["VariableNames"] == "a|b"
    assert props["ConstructedType"] == "Int64"
    rebuilt = reference_kind("Function").from_item_properties(props, {"a": a, "b": b})
    assert rebuilt.read().tolist() == [-2, -2]
    with pytest.raises(ConfigurationError, match="undefined arrays: b"):
        FunctionReference.from_item_properties(props, {"a": a})
