import numpy as np
import pytest

from arrayref import (
    ConcreteArray,
    ConfigurationError,
    FunctionReference,
    RangeError,
    SubsetReference,
    reference_kind,
)
from tests._support import counting_array


def _subset(source, start, stride, count, **kwargs):
    return ConcreteArray(
        reference=SubsetReference(source, start, stride, count, **kwargs), name="subset"
    )


def test_strided_selection_from_vector():
    source = ConcreteArray(np.arange(10), name="source")
    subset = _subset(source, [2], [2], [3])
    assert subset.read().tolist() == [2, 4, 6]
    assert subset.get_array_type() == "Int64"


def test_zero_count_yields_empty_typed_array():
    source = ConcreteArray(np.arange(10, dtype=np.float32), name="source")
    values = _subset(source, [0], [1], [0]).read()
    assert values.shape == (0,)
    assert values.dtype == np.float32


def test_two_dimensional_hyperslab_is_row_major():
    source = ConcreteArray(np.arange(20).reshape(4, 5), name="grid")
    values = _subset(source, [1, 0], [2, 2], [2, 3]).read()
    assert values.tolist() == [[5, 7, 9], [15, 17, 19]]


def test_zero_stride_repeats_an_element():
    source = ConcreteArray(np.array([4, 5, 6]), name="source")
    assert _subset(source, [1], [0], [3]).read().tolist() == [5, 5, 5]


def test_constructed_type_controls_result_dtype():
    source = ConcreteArray(np.arange(6), name="source")
    values = _subset(source, [0], [3], [2], constructed_type="Float32").read()
    assert values.dtype == np.float32
    assert values.tolist() == [0.0, 3.0]


def test_out_of_range_selection_fails_at_read_and_can_be_corrected():
    source = ConcreteArray(np.arange(10), name="source")
    reference = SubsetReference(source, [5], [3], [3])
    subset = ConcreteArray(reference=reference, name="subset")
    with pytest.raises(RangeError, match="exceeds source extent 10") as excinfo:
        subset.read()
    assert excinfo.value.dimension == 0
    assert excinfo.value.array == "subset"
    assert not subset.is_resolved

    reference.set_selection([5], [2], [3])
    assert subset.read().tolist() == [5, 7, 9]


def test_reselection_updates_default_dimensions():
    source = ConcreteArray(np.arange(10), name="source")
    subset = _subset(source, [2], [2], [3])
    assert subset.get_dimensions() == (3,)
    subset.reference.set_selection([0], [1], [5])
    assert subset.get_dimensions() == (5,)
    assert subset.read().shape == (5,)
    assert subset.reference.get_item_properties()["Dimensions"] == "5"


def test_given_dimensions_and_type_are_kept_across_reconfiguration():
    source = ConcreteArray(np.arange(10), name="source")
    subset = _subset(
        source,
        [0],
        [1],
        [2],
        constructed_type="Float32",
        constructed_properties={"Dimensions": "1 2"},
    )
    subset.reference.set_selection([0], [1], [4])
    subset.reference.set_source(ConcreteArray(np.zeros(4, dtype=np.int16), name="other"))
    assert subset.get_dimensions() == (1, 2)
    assert subset.get_array_type() == "Float32"


def test_source_change_updates_inferred_type():
    subset = _subset(ConcreteArray(np.arange(4), name="ints"), [0], [1], [2])
    assert subset.get_array_type() == "Int64"
    subset.reference.set_source(ConcreteArray(np.array([0.5, 1.5, 2.5, 3.5]), name="floats"))
    assert subset.get_array_type() == "Float64"
    assert subset.read().tolist() == [0.5, 1.5]


def test_negative_descriptor_values_are_range_errors():
    source = ConcreteArray(np.arange(4), name="source")
    with pytest.raises(RangeError, match="non-negative"):
        _subset(source, [-1], [1], [2]).read()


def test_descriptor_rank_must_match_source():
    source = ConcreteArray(np.zeros((2, 2)), name="source")
    with pytest.raises(ConfigurationError, match="2-d source"):
        _subset(source, [0], [1], [1]).read()


def test_missing_constructed_type_is_a_configuration_error():
    source = ConcreteArray(np.zeros(2, dtype=np.float16), name="half")
    subset = _subset(source, [0], [1], [1])
    assert subset.get_array_type() is None
    with pytest.raises(ConfigurationError, match="no constructed type") as excinfo:
        subset.read()
    assert excinfo.value.array == "subset"
    subset.reference.set_constructed_type("Float32")
    assert subset.read().dtype == np.float32


def test_lazy_source_is_resolved_once_across_subsets():
    source = counting_array([0.0, 1.0, 2.0, 3.0], "source")
    head = _subset(source, [0], [1], [2])
    tail = _subset(source, [2], [1], [2])
    assert head.read().tolist() == [0.0, 1.0]
    assert tail.read().tolist() == [2.0, 3.0]
    assert source.reference.calls == 1


def test_subset_of_lazy_function_result():
    a = ConcreteArray(np.array([1, 2, 3, 4]), name="a")
    b = ConcreteArray(np.array([10, 20, 30, 40]), name="b")
    total = ConcreteArray(reference=FunctionReference("add", [a, b]), name="total")
    tail = _subset(total, [1], [2], [2])
    assert tail.get_dimensions() == (2,)
    assert tail.read().tolist() == [22, 44]
    assert total.is_resolved


def test_item_properties_describe_selection_and_rebuild_reference():
    source = ConcreteArray(np.arange(10), name="source")
    reference = SubsetReference(source, [2], [2], [3])
    props = reference.get_item_properties()
    assert props["SubsetStarts"] == "2"
    assert props["SubsetStrides"] == "2"
    assert props["SubsetDimensions"] == "3"
    assert props["ConstructedType"] == "Int64"
    assert props["Dimensions"] == "3"

    kind = reference_kind("Subset")
    assert kind is SubsetReference
    rebuilt = kind.from_item_properties(props, source)
    assert rebuilt.get_constructed_type() == "Int64"
    assert rebuilt.read().tolist() == [2, 4, 6]


def test_from_item_properties_requires_selection_keys():
    source = ConcreteArray(np.arange(3), name="source")
    with pytest.raises(ConfigurationError, match="SubsetStrides"):
        SubsetReference.from_item_properties(
            {"SubsetStarts": "0", "SubsetDimensions": "1"}, source
        )
