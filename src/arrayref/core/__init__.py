"""Core runtime modules for arrayref."""

__all__ = [
    "array",
    "array_types",
    "exceptions",
    "expression",
    "function",
    "operators",
    "properties",
    "reference",
    "resolver",
    "subset",
]
