from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from .core.array import ConcreteArray
from .core.exceptions import ArrayRefError
from .core.expression import build_expression
from .core.resolver import Resolver, ResolverConfig


def _load_values(value: str) -> Any:
    lowered = value.lower()
    if lowered.endswith(".npy"):
        try:
            return np.load(Path(value), allow_pickle=False)
        except FileNotFoundError as exc:
            raise SystemExit(f"Array file not found: {value}") from exc
    if lowered.endswith(".json"):
        try:
            return json.loads(Path(value).read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise SystemExit(f"Array file not found: {value}") from exc
    try:
        return json.loads(f"[{value}]")
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Cannot parse inline values {value!r}") from exc


def _load_variables(specs: List[str]) -> Dict[str, ConcreteArray]:
    variables: Dict[str, ConcreteArray] = {}
    for spec in specs:
        name, sep, value = spec.partition("=")
        if not sep or not name:
            raise SystemExit(f"Invalid --var {spec!r}; expected NAME=VALUE")
        variables[name] = ConcreteArray(_load_values(value), name=name)
    return variables


def _write_output(path: Path, tensor: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if str(path).lower().endswith(".json"):
        path.write_text(json.dumps(np.asarray(tensor).tolist(), indent=2), encoding="utf-8")
    else:
        np.save(path, np.asarray(tensor))


def _describe(root: ConcreteArray) -> Dict[str, Any]:
    reference = root.reference
    return {
        "name": root.name,
        "lazy": root.is_lazy,
        "constructed_type": root.get_array_type(),
        "dimensions": list(root.get_dimensions() or []),
        "constructed_properties": (
            reference.get_constructed_properties().to_dict() if reference is not None else {}
        ),
        "item_properties": (
            reference.get_item_properties().to_dict() if reference is not None else {}
        ),
    }


def _eval(
    expression: str,
    variables: List[str],
    *,
    type_tag: Optional[str],
    out: Optional[Path],
    explain: bool,
    traversal: str,
) -> None:
    root = build_expression(expression, _load_variables(variables), constructed_type=type_tag)
    resolver = Resolver(ResolverConfig(traversal=traversal))
    result = resolver.resolve(root)
    if out is None:
        np.set_printoptions(suppress=True)
        print(f"# {root.name} ({root.get_array_type()})")
        print(np.asarray(result))
    else:
        _write_output(out, result)
    if explain:
        print(resolver.explain())


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="arrayref command line utilities")
    subparsers = parser.add_subparsers(dest="cmd")

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("expression", help="Array expression, e.g. 'sum(A, B) / 2'")
        sub.add_argument(
            "--var",
            action="append",
            default=[],
            metavar="NAME=VALUE",
            help="Bind a variable to a .npy/.json file or an inline comma list (repeatable)",
        )
        sub.add_argument("--type", dest="type_tag", default=None, help="Constructed type tag")

    eval_parser = subparsers.add_parser("eval", help="Evaluate an expression")
    add_common(eval_parser)
    eval_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Optional output path (.npy/.json). If omitted, prints the result",
    )
    eval_parser.add_argument(
        "--explain", action="store_true", help="Print the resolver log after the result"
    )
    eval_parser.add_argument(
        "--traversal",
        default="worklist",
        choices=["worklist", "recursive"],
        help="Graph traversal strategy (default: worklist)",
    )

    describe_parser = subparsers.add_parser(
        "describe", help="Print an expression's metadata without evaluating it"
    )
    add_common(describe_parser)
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.cmd == "eval":
            _eval(
                args.expression,
                args.var,
                type_tag=args.type_tag,
                out=args.out,
                explain=args.explain,
                traversal=args.traversal,
            )
            return
        if args.cmd == "describe":
            root = build_expression(
                args.expression, _load_variables(args.var), constructed_type=args.type_tag
            )
            print(json.dumps(_describe(root), indent=2))
            return
    except ArrayRefError as exc:
        raise SystemExit(f"error: {exc}") from exc

    parser.print_help()


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])
