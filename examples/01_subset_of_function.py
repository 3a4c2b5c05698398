import numpy as np

from arrayref import ConcreteArray, FunctionReference, Resolver, SubsetReference

# Two stored arrays and a lazy product of the first with a strided slice of the second
readings = ConcreteArray(np.arange(1, 11, dtype=np.float64), name="readings")
scale = ConcreteArray(np.array([10.0, 20.0, 30.0]), name="scale")

every_other = ConcreteArray(
    reference=SubsetReference(readings, start=[0], stride=[2], count=[3]),
    name="every_other",
)
scaled = ConcreteArray(
    reference=FunctionReference("multiply", [every_other, scale]),
    name="scaled",
)

# Metadata is available before anything is read
print("scaled:", scaled.get_array_type(), scaled.get_dimensions())
print("item properties:", scaled.reference.get_item_properties().to_dict())

resolver = Resolver()
print("values:", resolver.resolve(scaled))
print(resolver.explain())

# Reconfiguring the selection invalidates the cached subset on its next request
every_other.reference.set_selection([1], [3], [3])
every_other_values = every_other.read()
scaled.invalidate()
print("after reselect:", every_other_values, scaled.read())
