from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np
from lark import Lark, Token, Transformer, v_args
from lark.exceptions import LarkError, UnexpectedInput

from .array import ConcreteArray
from .exceptions import ConfigurationError, ParseError
from .function import FunctionReference
from .operators import lookup_operator

GRAMMAR_PATH = Path(__file__).with_name("expression_grammar.lark")


@lru_cache(maxsize=1)
def _build_lark() -> Lark:
    return Lark(
        GRAMMAR_PATH.read_text(),
        parser="earley",
        start="start",
        ambiguity="resolve",
        propagate_positions=True,
        maybe_placeholders=False,
    )


@dataclass
class Number:
    value: Union[int, float]
    text: str


@dataclass
class Variable:
    name: str
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass
class Call:
    name: str
    args: List[Any] = field(default_factory=list)
    line: Optional[int] = None
    column: Optional[int] = None
    source: Optional[str] = None


Expr = Union[Number, Variable, Call]


def _operator_node(name: str):
    @v_args(meta=True)
    def handler(self, meta, items):
        return Call(
            name=name,
            args=list(items),
            line=meta.line,
            column=meta.column,
            source=self._slice(meta),
        )

    return handler


class _ExprTransformer(Transformer):
    def __init__(self, text: str):
        super().__init__()
        self._text = text

    def _slice(self, meta) -> str:
        return self._text[meta.start_pos : meta.end_pos].strip()

    def number(self, items):
        tok: Token = items[0]
        text = tok.value
        try:
            return Number(value=int(text), text=text)
        except ValueError:
            return Number(value=float(text), text=text)

    def variable(self, items):
        tok: Token = items[0]
        return Variable(name=tok.value, line=tok.line, column=tok.column)

    def arguments(self, items):
        return list(items)

    @v_args(meta=True)
    def call(self, meta, items):
        name_tok: Token = items[0]
        args = items[1] if len(items) > 1 else []
        return Call(
            name=name_tok.value.lower(),
            args=args,
            line=meta.line,
            column=meta.column,
            source=self._slice(meta),
        )

    equal = _operator_node("equal")
    not_equal = _operator_node("not_equal")
    less = _operator_node("less")
    less_equal = _operator_node("less_equal")
    greater = _operator_node("greater")
    greater_equal = _operator_node("greater_equal")
    join = _operator_node("join")
    add = _operator_node("add")
    subtract = _operator_node("subtract")
    multiply = _operator_node("multiply")
    divide = _operator_node("divide")
    negate = _operator_node("negate")
    power = _operator_node("power")


def parse_expression(text: str) -> Expr:
    parser = _build_lark()
    lines = text.splitlines()
    try:
        tree = parser.parse(text)
    except UnexpectedInput as exc:
        line = exc.line if exc.line and exc.line > 0 else 1
        column = exc.column if exc.column and exc.column > 0 else 1
        line_text = lines[line - 1] if 1 <= line <= len(lines) else ""
        raise ParseError(
            "Syntax error while parsing expression",
            line=line,
            column=column,
            line_text=line_text,
        ) from exc
    except LarkError as exc:  # pragma: no cover - defensive
        raise ParseError(str(exc)) from exc
    return _ExprTransformer(text).transform(tree)


class _GraphBuilder:
    def __init__(self, variables: Mapping[str, Any]):
        self._variables = variables
        self._arrays: Dict[str, ConcreteArray] = {}

    def build(self, node: Expr) -> ConcreteArray:
        if isinstance(node, Number):
            return ConcreteArray(np.asarray(node.value), name=node.text)
        if isinstance(node, Variable):
            return self._variable(node)
        if isinstance(node, Call):
            lookup_operator(node.name)
            operands = [self.build(arg) for arg in node.args]
            reference = FunctionReference(node.name, operands)
            return ConcreteArray(reference=reference, name=node.source or node.name)
        raise TypeError(f"Unexpected expression node {type(node).__name__}")

    def _variable(self, node: Variable) -> ConcreteArray:
        cached = self._arrays.get(node.name)
        if cached is not None:
            return cached
        if node.name not in self._variables:
            where = f" (line {node.line}, col {node.column})" if node.line is not None else ""
            raise ConfigurationError(f"Undefined variable '{node.name}'{where}")
        value = self._variables[node.name]
        array = value if isinstance(value, ConcreteArray) else ConcreteArray(value, name=node.name)
        self._arrays[node.name] = array
        return array


def build_expression(
    text: str,
    variables: Mapping[str, Any],
    *,
    constructed_type: Optional[str] = None,
    name: Optional[str] = None,
) -> ConcreteArray:
    """Parse ``text`` into a lazy array graph over ``variables``.

    Each operator application becomes a ``ConcreteArray`` backed by a
    ``FunctionReference``; variables that are not already ``ConcreteArray``
    instances are wrapped as eager arrays. A bare variable or literal is
    returned as is, so ``constructed_type`` only applies when the expression
    contains at least one operator.
    """
    root = _GraphBuilder(variables).build(parse_expression(text))
    if constructed_type is not None:
        if root.reference is None:
            raise ConfigurationError(
                "constructed_type only applies to expressions with an operator"
            )
        root.reference.set_constructed_type(constructed_type)
    if name is not None:
        root.name = name
    return root
