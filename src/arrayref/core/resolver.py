from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from .exceptions import ArrayRefError, ConfigurationError, CyclicReferenceError

if TYPE_CHECKING:
    from .array import ConcreteArray

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolverConfig:
    """
    Switches for a single resolution request.

    * ``traversal`` selects how the reference graph is walked. ``"worklist"``
      keeps an explicit stack so arbitrarily deep acyclic chains never touch
      the interpreter's recursion limit; ``"recursive"`` lets each reference
      resolve its dependencies from inside ``read()``.
    * ``explain_timings`` stores per-read wall time in the log records.
    * ``record_logs`` disables the structured log entirely when False.
    """

    traversal: str = "worklist"  # "worklist" | "recursive"
    explain_timings: bool = True
    record_logs: bool = True

    def normalized(self) -> "ResolverConfig":
        traversal = (self.traversal or "worklist").lower()
        if traversal not in {"worklist", "recursive"}:
            raise ValueError(f"Unsupported traversal: {self.traversal}")
        return replace(
            self,
            traversal=traversal,
            explain_timings=bool(self.explain_timings),
            record_logs=bool(self.record_logs),
        )


class ResolutionState(enum.Enum):
    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    FAILED = "failed"


class Resolver:
    """Evaluation driver for reference graphs.

    Marks (``IN_PROGRESS``/``RESOLVED``/``FAILED``) live on the resolver and are
    reset at the start of every top-level ``resolve()``; only the buffers
    cached on the arrays themselves outlive a request. References call back
    into ``resolve()`` for their operands, so nested requests share the marks
    of the request that triggered them and a cycle anywhere in the graph is
    seen as an array that is already in progress.
    """

    def __init__(self, config: Optional[ResolverConfig] = None):
        self.config = (config or ResolverConfig()).normalized()
        self.logs: List[Dict[str, Any]] = []
        self._states: Dict[int, ResolutionState] = {}
        self._path: List["ConcreteArray"] = []

    # Public API ----------------------------------------------------------------
    def resolve(self, array: "ConcreteArray") -> np.ndarray:
        cached = array.cached_values()
        if cached is not None:
            # a hit means an earlier request computed it, not this one
            earlier = not self._path or self.state_of(array) is not ResolutionState.RESOLVED
            if array.is_lazy and earlier:
                self._record({"kind": "cache_hit", "array": array.name})
            return cached
        if array.reference is None:
            error = ConfigurationError(f"Array '{array.name}' has neither values nor a reference")
            error.array = array.name
            raise error
        if self.state_of(array) is ResolutionState.IN_PROGRESS:
            raise self._cycle_error(array)
        if not self._path:
            self._states.clear()
        if self.config.traversal == "recursive":
            return self._resolve_recursive(array)
        return self._resolve_worklist(array)

    def state_of(self, array: "ConcreteArray") -> ResolutionState:
        return self._states.get(id(array), ResolutionState.UNVISITED)

    def explain(self, *, json: bool = False):
        if json:
            return [dict(entry) for entry in self.logs]
        lines: List[str] = []
        for entry in self.logs:
            kind = entry["kind"]
            if kind == "read":
                line = (
                    f"[read] {entry['array']} <- {entry['reference']} "
                    f"shape={tuple(entry['shape'])} dtype={entry['dtype']}"
                )
                if entry.get("elapsed_ms") is not None:
                    line += f" {entry['elapsed_ms']:.3f}ms"
                lines.append(line)
            elif kind == "cache_hit":
                lines.append(f"[hit] {entry['array']}")
            elif kind == "failure":
                lines.append(
                    f"[fail] {entry['array']} <- {entry['reference']}: "
                    f"{entry['error']}: {entry['message']}"
                )
        return "\n".join(lines)

    # Traversal -----------------------------------------------------------------
    def _resolve_worklist(self, root: "ConcreteArray") -> np.ndarray:
        stack: List[Tuple["ConcreteArray", Iterator["ConcreteArray"]]] = []
        self._enter(root)
        stack.append((root, iter(root.dependencies())))
        result: Optional[np.ndarray] = None
        try:
            while stack:
                node, pending = stack[-1]
                for dep in pending:
                    if dep.reference is None or dep.cached_values() is not None:
                        continue
                    if self.state_of(dep) is ResolutionState.IN_PROGRESS:
                        raise self._cycle_error(dep)
                    self._enter(dep)
                    stack.append((dep, iter(dep.dependencies())))
                    break
                else:
                    result = self._evaluate(node)
                    stack.pop()
                    self._leave(node, ResolutionState.RESOLVED)
        except BaseException:
            while stack:
                node, _ = stack.pop()
                self._leave(node, ResolutionState.FAILED)
            raise
        assert result is not None
        return result

    def _resolve_recursive(self, node: "ConcreteArray") -> np.ndarray:
        self._enter(node)
        try:
            result = self._evaluate(node)
        except BaseException:
            self._leave(node, ResolutionState.FAILED)
            raise
        self._leave(node, ResolutionState.RESOLVED)
        return result

    def _evaluate(self, node: "ConcreteArray") -> np.ndarray:
        reference = node.reference
        assert reference is not None
        revision = reference.revision
        kind = type(reference).__name__
        logger.debug("Reading %s through %s", node.name, kind)
        started = time.perf_counter()
        try:
            values = reference.read(self)
        except ArrayRefError as exc:
            if exc.array is None:
                exc.array = node.name
            self._record(
                {
                    "kind": "failure",
                    "array": node.name,
                    "reference": kind,
                    "error": type(exc).__name__,
                    "message": str(exc),
                }
            )
            logger.debug("Reading %s failed: %s", node.name, exc)
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        frozen = node._store(reference, revision, values)
        self._record(
            {
                "kind": "read",
                "array": node.name,
                "reference": kind,
                "shape": tuple(int(dim) for dim in frozen.shape),
                "dtype": str(frozen.dtype),
                "elapsed_ms": elapsed_ms if self.config.explain_timings else None,
            }
        )
        return frozen

    # Marks -----------------------------------------------------------------------
    def _enter(self, node: "ConcreteArray") -> None:
        self._states[id(node)] = ResolutionState.IN_PROGRESS
        self._path.append(node)

    def _leave(self, node: "ConcreteArray", state: ResolutionState) -> None:
        popped = self._path.pop()
        assert popped is node
        self._states[id(node)] = state

    def _cycle_error(self, array: "ConcreteArray") -> CyclicReferenceError:
        start = next(idx for idx, node in enumerate(self._path) if node is array)
        cycle = [node.name for node in self._path[start:]] + [array.name]
        error = CyclicReferenceError(cycle)
        error.array = self._path[-1].name
        self._record(
            {
                "kind": "failure",
                "array": error.array,
                "reference": type(self._path[-1].reference).__name__,
                "error": type(error).__name__,
                "message": str(error),
            }
        )
        return error

    def _record(self, entry: Dict[str, Any]) -> None:
        if self.config.record_logs:
            self.logs.append(entry)
