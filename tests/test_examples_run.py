from __future__ import annotations

import runpy
from pathlib import Path

import pytest

EXAMPLES_DIR = Path(__file__).resolve().parent.parent / "examples"


@pytest.mark.parametrize(
    "script_path",
    sorted(EXAMPLES_DIR.glob("*.py"), key=lambda p: p.name),
    ids=lambda p: p.name,
)
def test_examples_run(script_path: Path, capsys) -> None:
    runpy.run_path(str(script_path), run_name="__main__")
    out = capsys.readouterr().out
    assert out.strip(), f"{script_path.name} printed nothing"


def test_cycle_example_reports_the_loop(capsys) -> None:
    runpy.run_path(str(EXAMPLES_DIR / "02_expression_graph.py"), run_name="__main__")
    assert "cycle: celsius -> 273.15 -> celsius" in capsys.readouterr().out
