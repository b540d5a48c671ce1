"""
codequest.runner.local — Resource-Capped Subprocess Sandbox
============================================================

Runs submissions on the API host, one short-lived process per test case:

1. A fresh temporary directory holds the source, the driver and the
   captured output files; it is deleted after grading.
2. The environment is scrubbed (``PATH``, ``HOME`` and locale only) and
   Python runs in isolated mode (``-I``).
3. POSIX rlimits cap CPU seconds, address space (python/c), file size
   (which also bounds captured stdout/stderr) and open files.  The JVM and
   V8 reserve large virtual ranges, so Java gets ``-Xmx`` and Node gets
   ``--max-old-space-size`` instead of an address-space cap.
4. Each process starts in its own session and the whole process group is
   killed on the wall-clock timeout.
5. With ``network_isolation`` enabled every command is wrapped in
   ``unshare --net --map-root-user`` so the child has no network interfaces.

Compilation (``javac``/``cc``) and syntax checks (``ast`` for Python,
``node --check``) happen once before any test case runs.
"""

from __future__ import annotations

import json
import logging
import math
import os
import resource
import shutil
import signal
import subprocess
import sys
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from codequest.constants import Language
from codequest.engine.grading import GradeReport, TestCase, TestResult, judge, render_value
from codequest.runner.base import SUPPORTED_LANGUAGES, GraderUnavailable, unsupported_language
from codequest.runner.harness import (
    JAVASCRIPT_DRIVER,
    PYTHON_DRIVER,
    InputDecodeError,
    JavaScriptEntry,
    PythonEntry,
    decode_arguments,
    encode_job,
    find_javascript_entry,
    find_python_entry,
    java_class_name,
    parse_python,
)

logger = logging.getLogger(__name__)

TIME_LIMIT_EXCEEDED = "Time limit exceeded"
OUTPUT_LIMIT_EXCEEDED = "Output limit exceeded"

_JOB_FILE = "job.json"
_RESULT_FILE = "result.json"
_STDOUT_FILE = ".stdout"
_STDERR_FILE = ".stderr"


@dataclass(frozen=True, slots=True)
class SandboxLimits:
    time_limit_seconds: float = 5.0
    memory_limit_mb: int = 256
    compile_time_limit_seconds: float = 20.0
    output_limit_bytes: int = 64 * 1024
    file_size_limit_bytes: int = 1024 * 1024
    open_files: int = 256


@dataclass(slots=True)
class _Completed:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool
    elapsed_ms: float


@dataclass(slots=True)
class _Prepared:
    """A compiled/checked submission ready to run test cases."""
    command: list[str]
    entry: PythonEntry | JavaScriptEntry | None = None
    cap_memory: bool = True


class LocalRunner:
    """Execute submissions in local subprocesses under :class:`SandboxLimits`."""

    def __init__(
        self,
        limits: SandboxLimits | None = None,
        *,
        network_isolation: bool = False,
    ) -> None:
        self.limits = limits or SandboxLimits()
        self._prefix: list[str] = []
        if network_isolation:
            unshare = shutil.which("unshare")
            if unshare is None:
                raise GraderUnavailable("network isolation requested but unshare is missing")
            self._prefix = [unshare, "--net", "--map-root-user"]

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------
    def execute(
        self,
        code: str,
        language: str,
        test_cases: list[TestCase],
    ) -> GradeReport:
        language = language.lower()
        if language not in SUPPORTED_LANGUAGES:
            return unsupported_language(language)

        with tempfile.TemporaryDirectory(prefix="codequest-") as tmp:
            workdir = Path(tmp)
            prepared = self._prepare(Language(language), code, workdir)
            if isinstance(prepared, GradeReport):
                return prepared
            results = [self._run_case(prepared, case, workdir) for case in test_cases]

        report = GradeReport(results=results)
        logger.debug(
            "Graded %s submission: %d/%d passed",
            language, report.passed_count, report.total_count,
        )
        return report

    # -----------------------------------------------------------------------
    # Preparation (syntax check / compile) — once per submission
    # -----------------------------------------------------------------------
    def _prepare(self, language: Language, code: str, workdir: Path) -> _Prepared | GradeReport:
        if language is Language.PYTHON:
            return self._prepare_python(code, workdir)
        if language is Language.JAVASCRIPT:
            return self._prepare_javascript(code, workdir)
        if language is Language.JAVA:
            return self._prepare_java(code, workdir)
        return self._prepare_c(code, workdir)

    def _prepare_python(self, code: str, workdir: Path) -> _Prepared | GradeReport:
        tree, syntax_error = parse_python(code)
        if syntax_error is not None:
            return GradeReport.compile_failure(syntax_error)

        (workdir / "solution.py").write_text(code, encoding="utf-8")
        entry = find_python_entry(tree)
        if entry is None:
            return _Prepared(command=[sys.executable, "-I", "solution.py"])

        (workdir / "driver.py").write_text(PYTHON_DRIVER, encoding="utf-8")
        return _Prepared(
            command=[sys.executable, "-I", "driver.py", "solution.py", _JOB_FILE, _RESULT_FILE],
            entry=entry,
        )

    def _prepare_javascript(self, code: str, workdir: Path) -> _Prepared | GradeReport:
        node = _require_tool("node")
        (workdir / "solution.js").write_text(code, encoding="utf-8")
        check = self._compile([node, "--check", "solution.js"], workdir)
        if check is not None:
            return check

        heap = f"--max-old-space-size={self.limits.memory_limit_mb}"
        entry = find_javascript_entry(code)
        if entry is None:
            return _Prepared(command=[node, heap, "solution.js"], cap_memory=False)

        (workdir / "driver.js").write_text(JAVASCRIPT_DRIVER, encoding="utf-8")
        return _Prepared(
            command=[node, heap, "driver.js", "solution.js", _JOB_FILE, _RESULT_FILE],
            entry=entry,
            cap_memory=False,
        )

    def _prepare_java(self, code: str, workdir: Path) -> _Prepared | GradeReport:
        javac = _require_tool("javac")
        java = _require_tool("java")
        class_name = java_class_name(code)
        (workdir / f"{class_name}.java").write_text(code, encoding="utf-8")
        failure = self._compile([javac, "-encoding", "UTF-8", f"{class_name}.java"], workdir)
        if failure is not None:
            return failure
        return _Prepared(
            command=[java, f"-Xmx{self.limits.memory_limit_mb}m", "-cp", ".", class_name],
            cap_memory=False,
        )

    def _prepare_c(self, code: str, workdir: Path) -> _Prepared | GradeReport:
        cc = shutil.which("cc") or shutil.which("gcc") or shutil.which("clang")
        if cc is None:
            raise GraderUnavailable("No C compiler found on the grading host")
        (workdir / "solution.c").write_text(code, encoding="utf-8")
        failure = self._compile(
            [cc, "-O2", "-std=c11", "-o", "solution", "solution.c", "-lm"], workdir
        )
        if failure is not None:
            return failure
        return _Prepared(command=[str(workdir / "solution")])

    def _compile(self, command: list[str], workdir: Path) -> GradeReport | None:
        """Run a compiler/checker; return a failure report or ``None``."""
        done = self._run(
            command,
            workdir,
            stdin="",
            timeout=self.limits.compile_time_limit_seconds,
            cap_memory=False,
            file_limit=64 * 1024 * 1024,
        )
        if done.timed_out:
            return GradeReport.compile_failure("Compilation timed out")
        if done.returncode != 0:
            message = (done.stderr or done.stdout).strip()
            return GradeReport.compile_failure(message.replace(str(workdir) + os.sep, ""))
        return None

    # -----------------------------------------------------------------------
    # Test case execution
    # -----------------------------------------------------------------------
    def _run_case(self, prepared: _Prepared, case: TestCase, workdir: Path) -> TestResult:
        result_path = workdir / _RESULT_FILE
        if prepared.entry is not None:
            try:
                job = encode_job(prepared.entry, decode_arguments(case.input))
            except InputDecodeError as exc:
                return judge(case, "", error=str(exc))
            (workdir / _JOB_FILE).write_text(job, encoding="utf-8")
            result_path.unlink(missing_ok=True)

        done = self._run(
            prepared.command,
            workdir,
            stdin=case.input,
            timeout=self.limits.time_limit_seconds,
            cap_memory=prepared.cap_memory,
            file_limit=self.limits.file_size_limit_bytes,
        )
        output = done.stdout.rstrip("\n")

        if done.timed_out:
            return judge(case, output, error=TIME_LIMIT_EXCEEDED, runtime_ms=done.elapsed_ms)
        if done.returncode != 0:
            return judge(
                case, output,
                error=_describe_failure(done.returncode, done.stderr),
                runtime_ms=done.elapsed_ms,
            )

        memory_kb = 0
        if prepared.entry is not None:
            try:
                payload = json.loads(result_path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                return judge(case, output, error="No result produced", runtime_ms=done.elapsed_ms)
            memory_kb = int(payload.get("memory_kb") or 0)
            if payload.get("value") is not None:
                output = render_value(payload["value"])

        return judge(case, output, runtime_ms=done.elapsed_ms, memory_kb=memory_kb)

    # -----------------------------------------------------------------------
    # Process control
    # -----------------------------------------------------------------------
    def _run(
        self,
        command: list[str],
        workdir: Path,
        *,
        stdin: str,
        timeout: float,
        cap_memory: bool,
        file_limit: int,
    ) -> _Completed:
        stdout_path = workdir / _STDOUT_FILE
        stderr_path = workdir / _STDERR_FILE
        timed_out = False

        with open(stdout_path, "wb") as out, open(stderr_path, "wb") as err:
            start = time.perf_counter()
            try:
                proc = subprocess.Popen(
                    self._prefix + command,
                    cwd=workdir,
                    stdin=subprocess.PIPE,
                    stdout=out,
                    stderr=err,
                    env=_sandbox_env(workdir),
                    preexec_fn=self._limiter(timeout, cap_memory, file_limit),
                    start_new_session=True,
                )
            except OSError as exc:
                logger.error("Failed to start sandboxed process %s: %s", command[0], exc)
                raise GraderUnavailable(f"Could not start {Path(command[0]).name}") from exc

            try:
                proc.communicate(input=stdin.encode("utf-8"), timeout=timeout)
            except subprocess.TimeoutExpired:
                timed_out = True
                _kill_group(proc)
                proc.communicate()
            elapsed_ms = (time.perf_counter() - start) * 1000

        return _Completed(
            returncode=proc.returncode,
            stdout=self._read_capped(stdout_path),
            stderr=self._read_capped(stderr_path),
            timed_out=timed_out,
            elapsed_ms=elapsed_ms,
        )

    def _limiter(self, timeout: float, cap_memory: bool, file_limit: int) -> Callable[[], None]:
        cpu_seconds = math.ceil(timeout) + 1
        memory_bytes = self.limits.memory_limit_mb * 1024 * 1024
        open_files = self.limits.open_files

        def apply_limits() -> None:
            resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds))
            resource.setrlimit(resource.RLIMIT_FSIZE, (file_limit, file_limit))
            resource.setrlimit(resource.RLIMIT_NOFILE, (open_files, open_files))
            resource.setrlimit(resource.RLIMIT_CORE, (0, 0))
            if cap_memory:
                resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))

        return apply_limits

    def _read_capped(self, path: Path) -> str:
        with open(path, "rb") as fh:
            data = fh.read(self.limits.output_limit_bytes)
        return data.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _require_tool(name: str) -> str:
    path = shutil.which(name)
    if path is None:
        raise GraderUnavailable(f"{name} is not installed on the grading host")
    return path


def _sandbox_env(workdir: Path) -> dict[str, str]:
    return {
        "PATH": os.environ.get("PATH", "/usr/local/bin:/usr/bin:/bin"),
        "HOME": str(workdir),
        "TMPDIR": str(workdir),
        "LANG": "C.UTF-8",
        "PYTHONIOENCODING": "utf-8",
        "PYTHONDONTWRITEBYTECODE": "1",
    }


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _describe_failure(returncode: int, stderr: str) -> str:
    """Turn a failed exit into a one-line, user-facing error."""
    if returncode == -signal.SIGXCPU or returncode == -signal.SIGKILL:
        return TIME_LIMIT_EXCEEDED
    if returncode == -signal.SIGXFSZ:
        return OUTPUT_LIMIT_EXCEEDED

    lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    useful = [
        line for line in lines
        if not line.startswith("at ") and not line.startswith("Node.js v")
        and line != "^"
    ]
    if useful:
        return useful[-1]
    if returncode < 0:
        return f"Process killed by signal {-returncode}"
    return f"Process exited with code {returncode}"
