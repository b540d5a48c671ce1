"""
tests/test_harness.py — Input Decoding & Entry Point Discovery
===============================================================
"""

from __future__ import annotations

import ast
import json

import pytest

from codequest.runner.harness import (
    JS_MODULE_EXPORTS,
    RESULT_MARKER,
    InputDecodeError,
    JavaScriptEntry,
    PythonEntry,
    build_program,
    decode_arguments,
    encode_job,
    find_javascript_entry,
    find_python_entry,
    java_class_name,
    split_program_output,
)


class TestDecodeArguments:
    def test_named_assignments_keep_order(self):
        assert decode_arguments("nums = [2,7,11,15], target = 9") == [[2, 7, 11, 15], 9]

    def test_one_literal_per_line(self):
        assert decode_arguments("[1, 2, 3]\n4") == [[1, 2, 3], 4]

    def test_comma_separated_literals(self):
        assert decode_arguments('"abc", 2') == ["abc", 2]

    def test_json_names(self):
        assert decode_arguments("flag = true, other = null") == [True, None]

    def test_bare_text_is_one_string(self):
        assert decode_arguments("hello world") == ["hello world"]

    def test_empty_input(self):
        assert decode_arguments("   ") == []


class TestEncodeJob:
    def test_round_trips_entry_and_args(self):
        job = json.loads(encode_job(PythonEntry("twoSum", "Solution"), [[1], (2, 3)]))
        assert job == {"entry": "twoSum", "cls": "Solution", "args": [[1], [2, 3]]}

    def test_rejects_unserializable(self):
        with pytest.raises(InputDecodeError):
            encode_job(PythonEntry("f"), [object()])


class TestFindPythonEntry:
    def test_prefers_solution_method(self):
        tree = ast.parse(
            "def helper():\n    pass\n"
            "class Solution:\n    def _x(self):\n        pass\n"
            "    def twoSum(self, nums, target):\n        pass\n"
        )
        assert find_python_entry(tree) == PythonEntry("twoSum", "Solution")

    def test_first_public_function(self):
        tree = ast.parse("def _private():\n    pass\ndef solve(x):\n    return x\n")
        assert find_python_entry(tree) == PythonEntry("solve")

    def test_script_has_no_entry(self):
        assert find_python_entry(ast.parse("print(input())")) is None

    def test_skips_helper_defined_first(self):
        tree = ast.parse(
            "def helper(a, b):\n    return a + b\n"
            "def twoSum(nums, target):\n    return helper(nums, [target])\n"
        )
        assert find_python_entry(tree) == PythonEntry("twoSum")

    def test_recursive_entry_after_helper(self):
        tree = ast.parse(
            "def step(n):\n    return n\n"
            "def total(n):\n    return 0 if n == 0 else step(n) + total(n - 1)\n"
        )
        assert find_python_entry(tree) == PythonEntry("total")

    def test_main_guard_calls_are_ignored(self):
        tree = ast.parse(
            "def helper(x):\n    return x\n"
            "def solve(x):\n    return helper(x)\n"
            "if __name__ == \"__main__\":\n    print(solve(1))\n"
        )
        assert find_python_entry(tree) == PythonEntry("solve")

    def test_solution_helper_called_through_self(self):
        tree = ast.parse(
            "class Solution:\n"
            "    def build(self, nums):\n        return {n: i for i, n in enumerate(nums)}\n"
            "    def twoSum(self, nums, target):\n        return self.build(nums)\n"
        )
        assert find_python_entry(tree) == PythonEntry("twoSum", "Solution")


class TestFindJavaScriptEntry:
    def test_class_method(self):
        source = "class Solution {\n  constructor() {}\n  twoSum(nums, target) {\n  }\n}"
        entry = find_javascript_entry(source)
        assert entry.name == "twoSum"
        assert entry.cls == "Solution"

    def test_function_declaration(self):
        assert find_javascript_entry("function solve(a) { return a; }").name == "solve"

    def test_arrow_function(self):
        assert find_javascript_entry("const solve = (a, b) => a + b;").name == "solve"

    def test_program_has_no_entry(self):
        assert find_javascript_entry("console.log(42);") is None

    def test_skips_helper_defined_first(self):
        source = (
            "function sum(a, b) { return a + b; }\n"
            "function addThree(a, b, c) { return sum(sum(a, b), c); }\n"
        )
        assert find_javascript_entry(source).name == "addThree"

    def test_class_helper_called_through_this(self):
        source = (
            "class Solution {\n"
            "  build(nums) {\n    return nums;\n  }\n"
            "  twoSum(nums, target) {\n    return this.build(nums);\n  }\n"
            "}\n"
        )
        assert find_javascript_entry(source) == JavaScriptEntry("twoSum", "Solution")

    def test_module_exports_name(self):
        source = "function helper() {}\nfunction twoSum() {}\nmodule.exports = twoSum;\n"
        assert find_javascript_entry(source) == JavaScriptEntry("twoSum")

    def test_module_exports_object(self):
        source = "const twoSum = (a) => a;\nmodule.exports = { twoSum };\n"
        assert find_javascript_entry(source) == JavaScriptEntry("twoSum")

    def test_anonymous_module_export(self):
        source = "module.exports = function (a, b) { return a + b; };\n"
        assert find_javascript_entry(source) == JavaScriptEntry(JS_MODULE_EXPORTS)


class TestJavaClassName:
    def test_public_class(self):
        assert java_class_name("class Helper {}\npublic class Main2 {}") == "Main2"

    def test_defaults_to_main(self):
        assert java_class_name("// empty") == "Main"


class TestBuildProgram:
    def _run(self, program: str, capsys) -> str:
        exec(compile(program, "program.py", "exec"), {"__name__": "__main__"})
        return capsys.readouterr().out

    def test_python_program_prints_result_after_marker(self, capsys):
        source = "def add(a, b):\n    print('adding')\n    return a + b\n"
        program = build_program("python", source, PythonEntry("add"), [2, 3])

        printed, result = split_program_output(self._run(program, capsys))

        assert printed.strip() == "adding"
        assert json.loads(result) == 5

    def test_python_solution_class(self, capsys):
        source = "class Solution:\n    def pair(self, a):\n        return (a, a)\n"
        program = build_program("python", source, PythonEntry("pair", "Solution"), [7])
        _, result = split_program_output(self._run(program, capsys))
        assert json.loads(result) == [7, 7]

    def test_source_text_is_not_substituted(self, capsys):
        source = 'def f():\n    return "__JOB__ __SOURCE__ __MARKER__"\n'
        program = build_program("python", source, PythonEntry("f"), [])
        _, result = split_program_output(self._run(program, capsys))
        assert json.loads(result) == "__JOB__ __SOURCE__ __MARKER__"

    def test_javascript_program_embeds_source_and_job(self):
        source = "function f(a) {\n  return `${a}`;\n}\n"
        program = build_program("javascript", source, JavaScriptEntry("f"), [1])
        assert json.dumps(source) in program
        assert f"const job = {encode_job(JavaScriptEntry('f'), [1])};" in program
        assert json.dumps(RESULT_MARKER) in program

    def test_unserializable_arguments(self):
        with pytest.raises(InputDecodeError):
            build_program("python", "def f(x): pass", PythonEntry("f"), [object()])


class TestSplitProgramOutput:
    def test_no_marker(self):
        assert split_program_output("Traceback ...\n") == ("Traceback ...\n", None)

    def test_nothing_printed(self):
        assert split_program_output(f"\n{RESULT_MARKER}[0,1]\n") == ("", "[0,1]")
