import numpy as np

from arrayref import CyclicReferenceError, FunctionReference, ResolverConfig, build_expression

variables = {"Temperature": np.array([280.0, 290.5, 301.25, 288.0])}

celsius = build_expression("Temperature - 273.15", variables, name="celsius")
hot = build_expression("celsius > 20", {"celsius": celsius})
summary = build_expression("join(max(celsius), min(celsius), AVE(celsius))", {"celsius": celsius})

print("celsius:", celsius.read())
print("hot:", hot.read())
print("max/min/mean:", summary.read(ResolverConfig(traversal="recursive")))

# Wire the output back into one of its inputs and the resolver reports the loop
offset = celsius.reference.operands[1]
offset.reference = FunctionReference("negate", [celsius], constructed_type="Float64")
celsius.invalidate()
try:
    celsius.read()
except CyclicReferenceError as exc:
    print("cycle:", " -> ".join(exc.cycle))
