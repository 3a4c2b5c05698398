#!/usr/bin/env python3
"""
Resolver traversal benchmark.

Builds a layered lattice of lazy ``add`` references (every node reads two
nodes of the previous layer, so shared operands are common) and times full
resolutions with the worklist and the recursive traversal. Caches are dropped
before every timed resolution.
"""

from __future__ import annotations

import argparse
import sys
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

import numpy as np

from arrayref import ConcreteArray, FunctionReference, Resolver, ResolverConfig


@dataclass
class BenchmarkResult:
    traversal: str
    nodes: int
    min_s: float
    mean_s: float
    iterations: int
    nodes_per_s: Optional[float]


def build_lattice(*, depth: int, width: int, size: int, seed: int) -> List[ConcreteArray]:
    rng = np.random.default_rng(seed)
    layer = [
        ConcreteArray(rng.normal(size=size), name=f"input{idx}") for idx in range(width)
    ]
    nodes: List[ConcreteArray] = []
    for level in range(depth):
        next_layer = []
        for idx in range(width):
            left = layer[idx]
            right = layer[(idx + 1) % width]
            node = ConcreteArray(
                reference=FunctionReference("add", [left, right]),
                name=f"n{level}_{idx}",
            )
            next_layer.append(node)
        nodes.extend(next_layer)
        layer = next_layer
    root = ConcreteArray(reference=FunctionReference("sum", layer), name="root")
    nodes.append(root)
    return nodes


def bench(
    fn: Callable[[], None],
    reset: Callable[[], None],
    *,
    iterations: int,
    warmup: int,
) -> Iterable[float]:
    timings = []
    for step in range(iterations + warmup):
        reset()
        start = time.perf_counter()
        fn()
        elapsed = time.perf_counter() - start
        if step >= warmup:
            timings.append(elapsed)
    return timings


def run_traversal(
    nodes: List[ConcreteArray],
    traversal: str,
    *,
    iterations: int,
    warmup: int,
) -> BenchmarkResult:
    root = nodes[-1]
    config = ResolverConfig(traversal=traversal, explain_timings=False, record_logs=False)

    def invoke():
        Resolver(config).resolve(root)

    def reset():
        for node in nodes:
            node.invalidate()

    try:
        timings = list(bench(invoke, reset, iterations=iterations, warmup=warmup))
    except RecursionError as exc:
        raise RuntimeError(f"graph too deep for {traversal} traversal") from exc
    min_s = min(timings)
    mean_s = sum(timings) / len(timings)
    return BenchmarkResult(
        traversal=traversal,
        nodes=len(nodes),
        min_s=min_s,
        mean_s=mean_s,
        iterations=iterations,
        nodes_per_s=len(nodes) / min_s if min_s > 0 else None,
    )


def format_results(results: Iterable[BenchmarkResult]) -> str:
    header = f"{'traversal':<10} {'nodes':>8} {'min (ms)':>12} {'mean (ms)':>12} {'iters':>8} {'nodes/s':>12}"
    rows = [header]
    for result in results:
        nodes_per_s = result.nodes_per_s or float("nan")
        rows.append(
            f"{result.traversal:<10} {result.nodes:8d} {result.min_s * 1e3:12.3f} "
            f"{result.mean_s * 1e3:12.3f} {result.iterations:8d} {nodes_per_s:12.0f}"
        )
    return "\n".join(rows)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Benchmark arrayref resolver traversals.")
    parser.add_argument(
        "--traversal",
        choices=("worklist", "recursive", "all"),
        default="all",
        help="Traversal(s) to benchmark (default: all).",
    )
    parser.add_argument("--depth", type=int, default=64, help="Lattice depth (default: 64).")
    parser.add_argument("--width", type=int, default=16, help="Lattice width (default: 16).")
    parser.add_argument("--size", type=int, default=1024, help="Array length (default: 1024).")
    parser.add_argument("--seed", type=int, default=2024, help="Random seed (default: 2024).")
    parser.add_argument(
        "--iterations", type=int, default=20, help="Timed iterations (default: 20)."
    )
    parser.add_argument(
        "--warmup", type=int, default=3, help="Warmup iterations to discard (default: 3)."
    )
    return parser.parse_args(argv)


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    nodes = build_lattice(depth=args.depth, width=args.width, size=args.size, seed=args.seed)

    results = []
    requested = ("worklist", "recursive") if args.traversal == "all" else (args.traversal,)
    for traversal in requested:
        try:
            results.append(
                run_traversal(
                    nodes, traversal, iterations=args.iterations, warmup=args.warmup
                )
            )
        except RuntimeError as exc:
            print(f"[skip] {traversal}: {exc}", file=sys.stderr)

    if not results:
        print("No traversal completed.", file=sys.stderr)
        return 1

    print(format_results(results))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
