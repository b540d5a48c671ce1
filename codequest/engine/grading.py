"""
codequest.engine.grading — Test Case Verdicts
==============================================

Pure calculation shared by every runner: test case parsing, canonical value
rendering, output normalization and the aggregate :class:`GradeReport`.

Output comparison is a normalized string equality.  Both sides are
case-folded, whitespace runs are collapsed to one space, and spaces next to
the structural punctuation ``, : [ ] { } ( )`` are dropped, so ``[0, 1]`` and
``[0,1]`` compare equal while ``1 2`` and ``12`` do not.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

_WHITESPACE = re.compile(r"\s+")
_PUNCT_SPACING = re.compile(r"\s*([,:\[\]{}()])\s*")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------
def normalize_output(text: str) -> str:
    """Canonical form used for every expected/actual comparison."""
    collapsed = _WHITESPACE.sub(" ", text).strip().casefold()
    return _PUNCT_SPACING.sub(r"\1", collapsed)


def outputs_match(actual: str, expected: str) -> bool:
    return normalize_output(actual) == normalize_output(expected)


def render_value(value: Any) -> str:
    """Render a harness return value as text.

    Strings pass through unchanged; everything else is rendered as compact
    JSON so ``True`` becomes ``true`` and tuples become lists.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


# ---------------------------------------------------------------------------
# Test cases
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TestCase:
    """One input/expected-output pair from a puzzle."""

    __test__ = False  # not a pytest class

    input: str
    expected: str
    hidden: bool = False


def parse_test_cases(raw: list[dict] | None) -> list[TestCase]:
    """Convert the puzzle's JSON ``test_cases`` column into :class:`TestCase`.

    ``expected`` may also be spelled ``output`` (the examples format).
    Non-string values are rendered with :func:`render_value`.
    """
    cases: list[TestCase] = []
    for item in raw or []:
        inp = item.get("input", "")
        expected = item.get("expected", item.get("output", ""))
        cases.append(TestCase(
            input=inp if isinstance(inp, str) else render_value(inp),
            expected=expected if isinstance(expected, str) else render_value(expected),
            hidden=bool(item.get("hidden", False)),
        ))
    return cases


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class TestResult:
    __test__ = False

    input: str
    expected: str
    output: str
    passed: bool
    hidden: bool = False
    error: str | None = None
    runtime_ms: float = 0.0
    memory_kb: int = 0

    def to_dict(self, *, mask_hidden: bool = True) -> dict:
        """Serialize for API responses; hidden cases only reveal the verdict."""
        masked = mask_hidden and self.hidden
        return {
            "input": None if masked else self.input,
            "expected": None if masked else self.expected,
            "output": None if masked else self.output,
            "passed": self.passed,
            "hidden": self.hidden,
            "error": None if masked else self.error,
            "runtime_ms": round(self.runtime_ms, 2),
        }


def judge(
    case: TestCase,
    output: str,
    *,
    error: str | None = None,
    runtime_ms: float = 0.0,
    memory_kb: int = 0,
) -> TestResult:
    """Build the verdict for one executed test case.

    A test with an execution error never passes, whatever it printed.
    """
    return TestResult(
        input=case.input,
        expected=case.expected,
        output=output,
        passed=error is None and outputs_match(output, case.expected),
        hidden=case.hidden,
        error=error,
        runtime_ms=runtime_ms,
        memory_kb=memory_kb,
    )


@dataclass(slots=True)
class GradeReport:
    """Aggregate outcome of grading one piece of code.

    ``error`` is set only for failures that stop grading before any test
    runs (compilation/syntax errors, unsupported language); ``results`` is
    then empty.
    """

    results: list[TestResult] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def compile_failure(cls, message: str) -> GradeReport:
        return cls(results=[], error=message or "Compilation failed")

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def total_count(self) -> int:
        return len(self.results)

    @property
    def all_passed(self) -> bool:
        """True only when at least one test ran and every test passed."""
        return self.error is None and self.total_count > 0 and (
            self.passed_count == self.total_count
        )

    @property
    def total_runtime_ms(self) -> float:
        return sum(r.runtime_ms for r in self.results)

    @property
    def average_memory_kb(self) -> int:
        if not self.results:
            return 0
        return sum(r.memory_kb for r in self.results) // len(self.results)

    def to_dict(self, *, mask_hidden: bool = True) -> dict:
        return {
            "results": [r.to_dict(mask_hidden=mask_hidden) for r in self.results],
            "error": self.error,
            "passed_count": self.passed_count,
            "total_count": self.total_count,
            "all_passed": self.all_passed,
            "runtime_ms": round(self.total_runtime_ms, 2),
            "memory_kb": self.average_memory_kb,
        }
