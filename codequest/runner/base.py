"""
codequest.runner.base — Runner Protocol
========================================

Every execution backend implements :class:`Runner`.  Runners never touch
the database; they turn ``(code, language, test_cases)`` into a
:class:`~codequest.engine.grading.GradeReport`.

Expected outcomes (compile errors, wrong answers, runtime errors, time
limits) are reported inside the report.  :class:`GraderUnavailable` is
raised only when the backend itself cannot run code, so callers can answer
"try again later" instead of fabricating a verdict.
"""

from __future__ import annotations

from typing import Protocol

from codequest.constants import Language
from codequest.engine.grading import GradeReport, TestCase

SUPPORTED_LANGUAGES: frozenset[str] = frozenset(lang.value for lang in Language)


class GraderUnavailable(RuntimeError):
    """The execution backend is missing, misconfigured or unreachable."""


class Runner(Protocol):
    def execute(
        self,
        code: str,
        language: str,
        test_cases: list[TestCase],
    ) -> GradeReport: ...


def unsupported_language(language: str) -> GradeReport:
    return GradeReport.compile_failure(
        f"Unsupported language: {language}. "
        f"Choose one of: {', '.join(sorted(SUPPORTED_LANGUAGES))}"
    )
