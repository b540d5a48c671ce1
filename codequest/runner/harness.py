"""
codequest.runner.harness — Per-Language Execution Harnesses
============================================================

Two harness styles:

* **Function harness** (python, javascript) — the user submits a function
  (or a method on a ``Solution`` class).  The host decodes each test input
  into a JSON argument list, a small driver script loads the user's source,
  calls the entry point and writes the return value to ``result.json``.
  Whatever the user prints stays on stdout and is only used as the output
  when the function returns nothing.
* **Program harness** (java, c, and python/javascript sources without a
  function) — the program reads the raw test input on stdin and its stdout
  is the output.

Input decoding accepts ``nums = [2,7,11,15], target = 9``, one literal per
line, a comma-separated literal list, or falls back to the raw text as a
single string argument.  JSON spellings ``true``/``false``/``null`` are
accepted alongside Python's.
"""

from __future__ import annotations

import ast
import json
import re
from dataclasses import dataclass
from typing import Any

SOLUTION_CLASS = "Solution"

_JSON_NAMES: dict[str, Any] = {"true": True, "false": False, "null": None}


class InputDecodeError(ValueError):
    """A test case input could not be turned into call arguments."""


# ---------------------------------------------------------------------------
# Test input → argument list
# ---------------------------------------------------------------------------
class _JsonNames(ast.NodeTransformer):
    def visit_Name(self, node: ast.Name) -> ast.AST:
        if node.id in _JSON_NAMES:
            return ast.copy_location(ast.Constant(_JSON_NAMES[node.id]), node)
        return node


def _literal(node: ast.AST) -> Any:
    return ast.literal_eval(_JsonNames().visit(node))


def decode_arguments(raw: str) -> list[Any]:
    """Decode a test case input string into positional arguments.

    Named assignments keep their written order and are passed positionally,
    so ``nums = [1], target = 2`` works whatever the parameter names are.
    """
    text = raw.strip()
    if not text:
        return []

    lines = [line.strip().rstrip(",") for line in text.splitlines() if line.strip()]
    for candidate in (text, ", ".join(lines)):
        try:
            call = ast.parse(f"_({candidate})", mode="eval").body
        except SyntaxError:
            continue
        if not isinstance(call, ast.Call) or any(k.arg is None for k in call.keywords):
            continue
        try:
            return [_literal(a) for a in call.args] + [
                _literal(k.value) for k in call.keywords
            ]
        except (ValueError, TypeError, SyntaxError, RecursionError):
            continue

    # Bare text such as ``hello world`` is a single string argument
    return [text]


def encode_job(entry: PythonEntry | JavaScriptEntry, args: list[Any]) -> str:
    try:
        return json.dumps({"entry": entry.name, "cls": entry.cls, "args": args},
                          default=_jsonable)
    except (TypeError, ValueError) as exc:
        raise InputDecodeError(f"Test input is not serializable: {exc}") from exc


def _jsonable(value: Any) -> Any:
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"unsupported value {value!r}")




# ---------------------------------------------------------------------------
# Entry point discovery
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PythonEntry:
    name: str
    cls: str | None = None


@dataclass(frozen=True, slots=True)
class JavaScriptEntry:
    name: str
    cls: str | None = None


def parse_python(code: str) -> tuple[ast.Module | None, str | None]:
    """Parse and compile-check *code*; return ``(tree, None)`` or ``(None, message)``."""
    try:
        tree = ast.parse(code, filename="solution.py")
        compile(tree, "solution.py", "exec")
    except SyntaxError as exc:
        return None, f"SyntaxError: {exc.msg} (line {exc.lineno})"
    except ValueError as exc:
        return None, f"SyntaxError: {exc}"
    return tree, None


def _pick_uncalled(names: list[str], called: set[str]) -> str | None:
    """First public name nothing else calls, else the first public name."""
    public = [name for name in names if not name.startswith("_")]
    for name in public:
        if name not in called:
            return name
    return public[0] if public else None


def _is_main_guard(node: ast.stmt) -> bool:
    if not isinstance(node, ast.If) or not isinstance(node.test, ast.Compare):
        return False
    names = [node.test.left, *node.test.comparators]
    return any(isinstance(n, ast.Name) and n.id == "__name__" for n in names)


def _call_name(func: ast.expr) -> str | None:
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return None


def _called_by_others(body: list[ast.stmt]) -> set[str]:
    """Names called anywhere in *body* except by themselves or a main guard."""
    called: set[str] = set()
    for node in body:
        if _is_main_guard(node):
            continue
        if isinstance(node, ast.ClassDef):
            called |= _called_by_others(node.body)
            continue
        own = node.name if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) else None
        for sub in ast.walk(node):
            if isinstance(sub, ast.Call):
                name = _call_name(sub.func)
                if name is not None and name != own:
                    called.add(name)
    return called


def find_python_entry(tree: ast.Module) -> PythonEntry | None:
    """Locate the function the harness should call.

    A public method of ``Solution`` wins over top-level functions.  Among
    candidates, helpers called by other code are skipped, so
    ``def helper(): ...`` written above ``def twoSum(): ...`` still grades
    ``twoSum``.
    """
    called = _called_by_others(tree.body)
    for node in tree.body:
        if isinstance(node, ast.ClassDef) and node.name == SOLUTION_CLASS:
            methods = [item.name for item in node.body if isinstance(item, ast.FunctionDef)]
            name = _pick_uncalled(methods, called)
            if name is not None:
                return PythonEntry(name=name, cls=SOLUTION_CLASS)
    functions = [node.name for node in tree.body if isinstance(node, ast.FunctionDef)]
    name = _pick_uncalled(functions, called)
    return PythonEntry(name=name) if name is not None else None


_JS_IDENT = r"[A-Za-z_$][\w$]*"
_JS_CLASS = re.compile(rf"\bclass\s+{SOLUTION_CLASS}\b[^{{]*{{(?P<body>.*)", re.S)
_JS_METHOD = re.compile(rf"^\s*(?:async\s+)?(?P<name>{_JS_IDENT})\s*\([^)]*\)\s*{{", re.M)
_JS_FUNCTION = re.compile(rf"\bfunction\s+(?P<name>{_JS_IDENT})\s*\(")
_JS_ARROW = re.compile(
    rf"\b(?:const|let|var)\s+(?P<name>{_JS_IDENT})\s*=\s*"
    rf"(?:async\s+)?(?:function\b|\([^)]*\)\s*=>|{_JS_IDENT}\s*=>)"
)
_JS_EXPORT_NAME = re.compile(rf"\bmodule\.exports\s*=\s*(?P<name>{_JS_IDENT})\s*(?:;|$)", re.M)
_JS_EXPORT_OBJECT = re.compile(rf"\bmodule\.exports\s*=\s*{{\s*(?P<name>{_JS_IDENT})")
_JS_EXPORT_FUNCTION = re.compile(
    rf"\bmodule\.exports\s*=\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*=>|{_JS_IDENT}\s*=>)"
)
_JS_KEYWORDS = frozenset({"constructor", "if", "for", "while", "switch", "catch", "function"})

# Entry name meaning "whatever module.exports holds"
JS_MODULE_EXPORTS = "module.exports"


def _js_pick(
    definitions: list[tuple[int, str]],
    text: str,
    call_pattern: str,
) -> str | None:
    """Pick among ``(offset, name)`` definitions, skipping ones called from
    outside their own body.  A body runs until the next definition."""
    definitions = sorted(definitions)
    called: set[str] = set()
    for i, (start, name) in enumerate(definitions):
        end = definitions[i + 1][0] if i + 1 < len(definitions) else len(text)
        for call in re.finditer(call_pattern.format(name=re.escape(name)), text):
            inside_own_body = start <= call.start() < end
            is_declaration = text[:call.start()].rstrip().endswith("function")
            if not inside_own_body and not is_declaration:
                called.add(name)
                break
    return _pick_uncalled([name for _, name in definitions], called)


def find_javascript_entry(source: str) -> JavaScriptEntry | None:
    """Locate the function the harness should call.

    Order: a ``Solution`` class method, an explicit ``module.exports``
    target, then a top-level function (helpers called elsewhere skipped).
    """
    class_match = _JS_CLASS.search(source)
    if class_match:
        body = class_match.group("body")
        methods = [
            (m.start(), m.group("name"))
            for m in _JS_METHOD.finditer(body)
            if m.group("name") not in _JS_KEYWORDS
        ]
        name = _js_pick(methods, body, r"\bthis\.{name}\s*\(")
        if name is not None:
            return JavaScriptEntry(name=name, cls=SOLUTION_CLASS)

    for pattern in (_JS_EXPORT_NAME, _JS_EXPORT_OBJECT):
        match = pattern.search(source)
        if match and match.group("name") not in _JS_KEYWORDS | {"class", "async"}:
            return JavaScriptEntry(name=match.group("name"))
    if _JS_EXPORT_FUNCTION.search(source):
        return JavaScriptEntry(name=JS_MODULE_EXPORTS)

    functions = [
        (m.start(), m.group("name"))
        for pattern in (_JS_FUNCTION, _JS_ARROW)
        for m in pattern.finditer(source)
    ]
    name = _js_pick(functions, source, r"(?<![\w$.]){name}\s*\(")
    return JavaScriptEntry(name=name) if name is not None else None


_JAVA_PUBLIC_CLASS = re.compile(r"\bpublic\s+(?:final\s+)?class\s+(\w+)")
_JAVA_CLASS = re.compile(r"\bclass\s+(\w+)")


def java_class_name(source: str) -> str:
    """File/class name javac and java must agree on."""
    match = _JAVA_PUBLIC_CLASS.search(source) or _JAVA_CLASS.search(source)
    return match.group(1) if match else "Main"


# ---------------------------------------------------------------------------
# Driver scripts
# ---------------------------------------------------------------------------
# The file drivers run next to the user's source in the sandbox dir and
# write the return value to a result file.  The self-contained programs
# embed source and arguments for backends that take a single file (Judge0)
# and print the return value after RESULT_MARKER on the last stdout line.
RESULT_MARKER = "__codequest_result__:"

_PYTHON_CALL = '''\
import json
import sys


def _jsonable(value):
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return repr(value)


def _call(source, job):
    namespace = {"__name__": "__solution__"}
    exec(compile(source, "solution.py", "exec"), namespace)
    if job["cls"]:
        target = getattr(namespace[job["cls"]](), job["entry"])
    else:
        target = namespace[job["entry"]]
    return target(*job["args"])
'''

PYTHON_DRIVER = _PYTHON_CALL + '''

def main():
    import resource

    source_path, job_path, result_path = sys.argv[1:4]
    with open(job_path, encoding="utf-8") as fh:
        job = json.load(fh)
    with open(source_path, encoding="utf-8") as fh:
        source = fh.read()
    value = _call(source, job)
    sys.stdout.flush()
    peak_kb = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    with open(result_path, "w", encoding="utf-8") as fh:
        json.dump({"value": value, "memory_kb": peak_kb}, fh, default=_jsonable)


main()
'''

_PYTHON_PROGRAM = _PYTHON_CALL + '''

_value = _call(__SOURCE__, json.loads(__JOB__))
sys.stdout.write("\\n" + __MARKER__ + json.dumps(_value, default=_jsonable) + "\\n")
'''

_JAVASCRIPT_LOAD = '''\
function loadTarget(source, job) {
  const mod = { exports: {} };
  const ref = job.cls || job.entry;
  let exported = new Function(
    "require", "module", "exports",
    `${source}\\nreturn typeof ${ref} === "undefined" ? undefined : ${ref};`
  )(require, mod, mod.exports);
  if (exported === undefined) {
    exported = typeof mod.exports === "function" ? mod.exports : mod.exports[ref];
  }
  if (!job.cls) {
    return exported;
  }
  const instance = new exported();
  return instance[job.entry].bind(instance);
}

function report(err) {
  console.error(err && err.stack ? err.stack : String(err));
  process.exitCode = 1;
}
'''

JAVASCRIPT_DRIVER = 'const fs = require("fs");\n\n' + _JAVASCRIPT_LOAD + '''
const [sourcePath, jobPath, resultPath] = process.argv.slice(2);
const job = JSON.parse(fs.readFileSync(jobPath, "utf8"));

Promise.resolve()
  .then(() => loadTarget(fs.readFileSync(sourcePath, "utf8"), job)(...job.args))
  .then((value) => {
    fs.writeFileSync(resultPath, JSON.stringify({
      value: value === undefined ? null : value,
      memory_kb: Math.round(process.memoryUsage().rss / 1024),
    }));
  })
  .catch(report);
'''

_JAVASCRIPT_PROGRAM = _JAVASCRIPT_LOAD + '''
const job = __JOB__;

Promise.resolve()
  .then(() => loadTarget(__SOURCE__, job)(...job.args))
  .then((value) => {
    const rendered = JSON.stringify(value === undefined ? null : value);
    process.stdout.write("\\n" + __MARKER__ + rendered + "\\n");
  })
  .catch(report);
'''

_PLACEHOLDER = re.compile(r"__(SOURCE|JOB|MARKER)__")


def build_program(
    language: str,
    source: str,
    entry: PythonEntry | JavaScriptEntry,
    args: list[Any],
) -> str:
    """Wrap a function-style submission into one runnable program.

    Raises :class:`InputDecodeError` for arguments that cannot be encoded.
    """
    job = encode_job(entry, args)
    if language == "python":
        template, values = _PYTHON_PROGRAM, {
            "SOURCE": repr(source), "JOB": repr(job), "MARKER": repr(RESULT_MARKER),
        }
    else:
        template, values = _JAVASCRIPT_PROGRAM, {
            "SOURCE": json.dumps(source), "JOB": job, "MARKER": json.dumps(RESULT_MARKER),
        }
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)


def split_program_output(stdout: str) -> tuple[str, str | None]:
    """Split a :func:`build_program` run into ``(printed, result_json)``.

    ``result_json`` is ``None`` when the program never reached the marker.
    """
    printed, marker, result = stdout.rpartition("\n" + RESULT_MARKER)
    if not marker:
        return stdout, None
    return printed, result.strip()
