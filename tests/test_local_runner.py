"""
tests/test_local_runner.py — Subprocess Sandbox Integration Tests
==================================================================
Runs real Python submissions through LocalRunner.  The JavaScript, Java
and C cases are skipped when the toolchain is not installed.
"""

from __future__ import annotations

import shutil
import sys

import pytest

from codequest.engine.grading import TestCase
from codequest.runner.local import TIME_LIMIT_EXCEEDED, LocalRunner, SandboxLimits

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX rlimits required")

TWO_SUM_CASES = [
    TestCase("nums = [2,7,11,15], target = 9", "[0,1]"),
    TestCase("nums = [3,2,4], target = 6", "[1,2]"),
    TestCase("nums = [3,3], target = 6", "[0,1]", hidden=True),
]

PY_TWO_SUM = """
class Solution:
    def twoSum(self, nums, target):
        seen = {}
        for i, n in enumerate(nums):
            if target - n in seen:
                return [seen[target - n], i]
            seen[n] = i
"""


@pytest.fixture
def runner() -> LocalRunner:
    return LocalRunner(SandboxLimits(time_limit_seconds=2.0, memory_limit_mb=256))


# ===========================================================================
# Python
# ===========================================================================
class TestPython:
    def test_correct_solution_passes_every_case(self, runner):
        report = runner.execute(PY_TWO_SUM, "python", TWO_SUM_CASES)
        assert report.error is None
        assert report.passed_count == 3
        assert report.all_passed

    def test_top_level_function(self, runner):
        code = "def add(a, b):\n    return a + b\n"
        report = runner.execute(code, "python", [TestCase("a = 2, b = 3", "5")])
        assert report.all_passed

    def test_helper_defined_before_entry(self, runner):
        code = (
            "def complement(target, n):\n"
            "    return target - n\n"
            "\n"
            "def twoSum(nums, target):\n"
            "    seen = {}\n"
            "    for i, n in enumerate(nums):\n"
            "        if complement(target, n) in seen:\n"
            "            return [seen[complement(target, n)], i]\n"
            "        seen[n] = i\n"
        )
        report = runner.execute(code, "python", TWO_SUM_CASES)
        assert report.error is None
        assert report.all_passed

    def test_wrong_answer_fails(self, runner):
        code = "def twoSum(nums, target):\n    return [0, 0]\n"
        report = runner.execute(code, "python", TWO_SUM_CASES)
        assert report.error is None
        assert report.passed_count == 0
        assert report.results[0].output == "[0,0]"

    def test_program_mode_reads_stdin(self, runner):
        code = "a, b = map(int, input().split())\nprint(a * b)\n"
        report = runner.execute(code, "python", [TestCase("6 7", "42")])
        assert report.all_passed

    def test_printed_output_used_when_function_returns_none(self, runner):
        code = "def greet(name):\n    print('hi ' + name)\n"
        report = runner.execute(code, "python", [TestCase('"bob"', "hi bob")])
        assert report.all_passed

    def test_syntax_error_is_a_compile_failure(self, runner):
        report = runner.execute("def broken(:\n    pass", "python", TWO_SUM_CASES)
        assert report.error is not None
        assert report.error.startswith("SyntaxError")
        assert report.results == []

    def test_runtime_error_is_reported_per_case(self, runner):
        code = "def f(x):\n    return 1 // 0\n"
        report = runner.execute(code, "python", [TestCase("1", "1")])
        assert report.error is None
        assert not report.results[0].passed
        assert "ZeroDivisionError" in report.results[0].error

    def test_infinite_loop_hits_time_limit(self):
        runner = LocalRunner(SandboxLimits(time_limit_seconds=1.0))
        report = runner.execute("def f(x):\n    while True:\n        pass\n", "python",
                                [TestCase("1", "1")])
        assert report.results[0].error == TIME_LIMIT_EXCEEDED
        assert not report.all_passed

    def test_environment_is_scrubbed(self, runner, monkeypatch):
        monkeypatch.setenv("JWT_SECRET_CANARY", "leak")
        code = "import os\nprint(os.environ.get('JWT_SECRET_CANARY', 'clean'))\n"
        report = runner.execute(code, "python", [TestCase("", "clean")])
        assert report.all_passed


class TestLanguageSelection:
    def test_unsupported_language(self, runner):
        report = runner.execute("puts 1", "ruby", TWO_SUM_CASES)
        assert report.error.startswith("Unsupported language: ruby")

    def test_language_is_case_insensitive(self, runner):
        report = runner.execute(PY_TWO_SUM, "Python", TWO_SUM_CASES[:1])
        assert report.all_passed


# ===========================================================================
# Other toolchains
# ===========================================================================
@pytest.mark.skipif(shutil.which("node") is None, reason="node not installed")
class TestJavaScript:
    def test_function_solution(self, runner):
        code = (
            "function twoSum(nums, target) {\n"
            "  const seen = new Map();\n"
            "  for (let i = 0; i < nums.length; i++) {\n"
            "    if (seen.has(target - nums[i])) return [seen.get(target - nums[i]), i];\n"
            "    seen.set(nums[i], i);\n"
            "  }\n"
            "}\n"
        )
        assert runner.execute(code, "javascript", TWO_SUM_CASES).all_passed

    def test_module_exports_solution(self, runner):
        code = (
            "function twoSum(nums, target) {\n"
            "  for (let i = 0; i < nums.length; i++) {\n"
            "    for (let j = i + 1; j < nums.length; j++) {\n"
            "      if (nums[i] + nums[j] === target) return [i, j];\n"
            "    }\n"
            "  }\n"
            "}\n"
            "module.exports = twoSum;\n"
        )
        report = runner.execute(code, "javascript", TWO_SUM_CASES)
        assert report.results[0].error is None
        assert report.all_passed

    def test_anonymous_module_export(self, runner):
        code = "module.exports = (a, b) => a + b;\n"
        assert runner.execute(code, "javascript", [TestCase("a = 2, b = 3", "5")]).all_passed

    def test_helper_defined_before_entry(self, runner):
        code = (
            "function sum(a, b) {\n"
            "  return a + b;\n"
            "}\n"
            "function addThree(a, b, c) {\n"
            "  return sum(sum(a, b), c);\n"
            "}\n"
        )
        report = runner.execute(code, "javascript", [TestCase("1, 2, 3", "6")])
        assert report.all_passed

    def test_syntax_error(self, runner):
        report = runner.execute("function (", "javascript", TWO_SUM_CASES)
        assert report.error is not None


@pytest.mark.skipif(
    shutil.which("javac") is None or shutil.which("java") is None,
    reason="JDK not installed",
)
class TestJava:
    def test_stdin_program(self, runner):
        code = (
            "import java.util.Scanner;\n"
            "public class Main {\n"
            "  public static void main(String[] args) {\n"
            "    Scanner s = new Scanner(System.in);\n"
            "    System.out.println(s.nextInt() + s.nextInt());\n"
            "  }\n"
            "}\n"
        )
        assert runner.execute(code, "java", [TestCase("2 3", "5")]).all_passed

    def test_compile_error(self, runner):
        report = runner.execute("public class Main { int x = ; }", "java", [TestCase("", "")])
        assert report.error is not None


@pytest.mark.skipif(
    not any(shutil.which(cc) for cc in ("cc", "gcc", "clang")),
    reason="C compiler not installed",
)
class TestC:
    def test_stdin_program(self, runner):
        code = (
            "#include <stdio.h>\n"
            "int main(void) { int a, b; scanf(\"%d %d\", &a, &b); printf(\"%d\\n\", a + b); }\n"
        )
        assert runner.execute(code, "c", [TestCase("2 3", "5")]).all_passed

    def test_compile_error(self, runner):
        report = runner.execute("int main(void) { return }", "c", [TestCase("", "")])
        assert report.error is not None
