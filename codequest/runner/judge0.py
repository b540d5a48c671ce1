"""
codequest.runner.judge0 — Remote Judge0 Execution
==================================================

Delegates execution to a Judge0 instance (self-hosted or RapidAPI).  Each
test case is one synchronous submission (``wait=true``).

Function-style Python and JavaScript submissions are wrapped with
:func:`~codequest.runner.harness.build_program` so the function is called
with the decoded test input exactly as the local sandbox calls it; programs
(and all Java/C) receive the raw test input on stdin.

Network and HTTP failures raise :class:`GraderUnavailable`; a result is
never invented when the judge cannot be reached.
"""

from __future__ import annotations

import json
import logging

import httpx

from codequest.constants import Language
from codequest.engine.grading import GradeReport, TestCase, TestResult, judge, render_value
from codequest.runner.base import SUPPORTED_LANGUAGES, GraderUnavailable, unsupported_language
from codequest.runner.harness import (
    InputDecodeError,
    JavaScriptEntry,
    PythonEntry,
    build_program,
    decode_arguments,
    find_javascript_entry,
    find_python_entry,
    parse_python,
    split_program_output,
)

logger = logging.getLogger(__name__)

JUDGE0_LANGUAGE_IDS: dict[str, int] = {
    Language.PYTHON: 71,      # Python 3.8.1
    Language.JAVASCRIPT: 63,  # Node.js 12.14.0
    Language.JAVA: 62,        # OpenJDK 13.0.1
    Language.C: 50,           # GCC 9.2.0
}

# Judge0 status ids
_STATUS_TIME_LIMIT = 5
_STATUS_COMPILATION_ERROR = 6
_STATUS_FIRST_RUNTIME_ERROR = 7
_STATUS_INTERNAL_ERROR = 13


class Judge0Runner:
    """Grade submissions through the Judge0 REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        time_limit_seconds: float = 5.0,
        memory_limit_mb: int = 256,
        request_timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.time_limit_seconds = time_limit_seconds
        self.memory_limit_mb = memory_limit_mb
        self.request_timeout = request_timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        host = httpx.URL(self.base_url).host
        return {"X-RapidAPI-Key": self.api_key, "X-RapidAPI-Host": host}

    def _client(self) -> httpx.Client:
        transport = self._transport or httpx.HTTPTransport(retries=1)
        return httpx.Client(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.request_timeout,
            transport=transport,
        )

    def execute(
        self,
        code: str,
        language: str,
        test_cases: list[TestCase],
    ) -> GradeReport:
        language = language.lower()
        if language not in SUPPORTED_LANGUAGES:
            return unsupported_language(language)

        entry: PythonEntry | JavaScriptEntry | None = None
        if language == Language.PYTHON:
            tree, syntax_error = parse_python(code)
            if syntax_error is not None:
                return GradeReport.compile_failure(syntax_error)
            entry = find_python_entry(tree)
        elif language == Language.JAVASCRIPT:
            entry = find_javascript_entry(code)

        results: list[TestResult] = []
        with self._client() as client:
            for case in test_cases:
                source = code
                if entry is not None:
                    try:
                        source = build_program(language, code, entry, decode_arguments(case.input))
                    except InputDecodeError as exc:
                        results.append(judge(case, "", error=str(exc)))
                        continue

                payload = self._submit(client, {
                    "language_id": JUDGE0_LANGUAGE_IDS[language],
                    "source_code": source,
                    "stdin": case.input,
                    "cpu_time_limit": self.time_limit_seconds,
                    "memory_limit": self.memory_limit_mb * 1024,
                })
                status_id = (payload.get("status") or {}).get("id")
                compile_output = payload.get("compile_output")
                if compile_output or status_id == _STATUS_COMPILATION_ERROR:
                    return GradeReport.compile_failure(
                        (compile_output or "Compilation failed").strip()
                    )
                if status_id == _STATUS_INTERNAL_ERROR:
                    raise GraderUnavailable("Judge0 reported an internal error")
                results.append(
                    self._to_result(case, payload, status_id, harnessed=entry is not None)
                )

        return GradeReport(results=results)

    def _submit(self, client: httpx.Client, body: dict) -> dict:
        try:
            resp = client.post(
                "/submissions",
                params={"base64_encoded": "false", "wait": "true"},
                json=body,
            )
        except httpx.HTTPError as exc:
            logger.warning("Judge0 request failed: %s", exc)
            raise GraderUnavailable("Judge0 is unreachable") from exc

        if resp.status_code >= 400:
            logger.warning("Judge0 returned HTTP %d: %s", resp.status_code, resp.text[:200])
            raise GraderUnavailable(f"Judge0 returned HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise GraderUnavailable("Judge0 returned a malformed response") from exc

    @staticmethod
    def _to_result(
        case: TestCase,
        payload: dict,
        status_id: int | None,
        *,
        harnessed: bool = False,
    ) -> TestResult:
        stdout = payload.get("stdout") or ""
        runtime_ms = float(payload.get("time") or 0) * 1000
        memory_kb = int(payload.get("memory") or 0)

        error = None
        if status_id == _STATUS_TIME_LIMIT:
            error = "Time limit exceeded"
        elif status_id is not None and status_id >= _STATUS_FIRST_RUNTIME_ERROR:
            stderr = (payload.get("stderr") or "").strip()
            description = (payload.get("status") or {}).get("description", "Runtime error")
            error = stderr.splitlines()[-1] if stderr else description

        result_json = None
        if harnessed:
            stdout, result_json = split_program_output(stdout)
        output = stdout.rstrip("\n")

        if harnessed and error is None:
            try:
                value = json.loads(result_json) if result_json is not None else None
            except ValueError:
                result_json = None
            if result_json is None:
                error = "No result produced"
            elif value is not None:
                output = render_value(value)

        return judge(case, output, error=error, runtime_ms=runtime_ms, memory_kb=memory_kb)
