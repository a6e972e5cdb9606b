"""Templated field and mapping evaluation

Fields are strings with embedded ``${! expr }`` interpolations. Mappings are
assignment scripts that build a new JSON document from the input context::

    context = "qa1-use2"
    vars.region = "us-east-2"
    root = vars

Both are evaluated with a sandboxed Jinja2 environment, so right-hand sides
use Jinja2 expression syntax (literals, attribute access, filters).
"""

import copy
import json
import logging
import os
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from jinja2 import ChainableUndefined, TemplateError, Undefined
from jinja2.sandbox import SandboxedEnvironment, SecurityError

from ctr.exceptions import EvaluationError

logger = logging.getLogger(__name__)

FIELD_START = "${!"
FIELD_END = "}"

TARGET_RE = re.compile(r"^(root|[A-Za-z_][A-Za-z0-9_]*)(\.[A-Za-z_][A-Za-z0-9_]*)*$")

RESERVED_NAMES = ("this", "root", "json", "env", "null", "true", "false")


def _finalize(value: Any) -> Any:
    """Render interpolated values as their JSON text"""
    if isinstance(value, Undefined) or value is None:
        return "null"
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, dict, list, tuple)):
        return json.dumps(to_json_value(value), separators=(",", ":"))
    return value


def to_json_value(value: Any) -> Any:
    """Normalize an expression result into plain JSON types

    Raises:
        TypeError: If the value has no JSON representation
    """
    if isinstance(value, Undefined) or value is None:
        return None
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    raise TypeError(f"value of type {type(value).__name__} is not JSON serializable")


def lookup_path(document: Any, path: str) -> Any:
    """Return the value at a dotted path, or None if any segment is missing"""
    if not path:
        return document
    current = document
    for segment in path.split("."):
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit() and int(segment) < len(current):
            current = current[int(segment)]
        else:
            return None
    return current


class StrictSandbox(SandboxedEnvironment):
    """Sandbox that fails on unsafe attribute access instead of yielding undefined"""

    def unsafe_undefined(self, obj: Any, attribute: str):
        raise SecurityError(
            f"access to attribute {attribute!r} of {type(obj).__name__!r} object is unsafe"
        )


def create_environment() -> SandboxedEnvironment:
    """Create the sandboxed Jinja2 environment shared by fields and mappings

    Only expressions are ever compiled, never whole templates.
    """
    env = StrictSandbox(
        variable_start_string=FIELD_START,
        variable_end_string=FIELD_END,
        undefined=ChainableUndefined,
        autoescape=False,
    )
    env.globals.update(
        null=None,
        env=lambda name, default=None: os.environ.get(name, default),
    )
    return env


class ExpressionEvaluator:
    """Evaluate fields and mappings against one JSON context

    The context defaults to an empty object. ``with_context`` returns an
    evaluator bound to a new context, which is how the input mapping result
    feeds every later evaluation of an invocation.
    """

    def __init__(self, context: Any = None, env: Optional[SandboxedEnvironment] = None):
        self.context = {} if context is None else context
        self.env = env or create_environment()

    def with_context(self, context: Any) -> "ExpressionEvaluator":
        return ExpressionEvaluator(context, env=self.env)

    def _variables(self, root: Any = None) -> Dict[str, Any]:
        variables = {}
        if isinstance(self.context, dict):
            variables.update(
                (k, v) for k, v in self.context.items() if k not in RESERVED_NAMES
            )
        variables["this"] = self.context
        variables["root"] = root
        variables["json"] = lambda path="": lookup_path(self.context, path)
        return variables

    def evaluate_field(self, text: str) -> str:
        """Render a templated string against the context

        Raises:
            EvaluationError: On syntax errors or failures while rendering
        """
        if FIELD_START not in text:
            return text

        variables = self._variables()
        rendered = []
        for literal, expr, compiled in self.compile_field(text):
            rendered.append(literal)
            if compiled is None:
                continue
            try:
                rendered.append(str(_finalize(compiled(**variables))))
            except (TemplateError, TypeError, ValueError, ArithmeticError) as e:
                raise EvaluationError(text, f"{expr}: {e}") from e
        return "".join(rendered)

    def compile_field(self, text: str) -> List[Tuple[str, str, Optional[Callable[..., Any]]]]:
        """Split a field into (literal, expression, compiled) parts

        Only the ``${! ... }`` parts go through Jinja2; the text around them
        is copied verbatim, so ``{%`` and ``{#`` in a field stay literal. The
        trailing literal comes last with no expression.

        Raises:
            EvaluationError: If an expression is unterminated or fails to compile
        """
        parts = []
        for literal, expr in _split_field(text):
            if expr is None:
                parts.append((literal, "", None))
                continue
            expr = expr.strip()
            try:
                compiled = self.env.compile_expression(expr, undefined_to_none=False)
            except TemplateError as e:
                raise EvaluationError(text, f"{expr}: {e}") from e
            parts.append((literal, expr, compiled))
        return parts

    def evaluate_mapping(self, script: str) -> Any:
        """Run an assignment script and return the document it builds

        Returns:
            The JSON value assigned to root, or None if nothing was assigned

        Raises:
            EvaluationError: On malformed statements or failing expressions
        """
        statements = self.compile_mapping(script)

        root = None
        for target, expr, compiled in statements:
            try:
                value = compiled(**self._variables(copy.deepcopy(root)))
                value = copy.deepcopy(to_json_value(value))
            except (TemplateError, TypeError, ValueError, ArithmeticError) as e:
                raise EvaluationError(script, f"{target} = {expr}: {e}", kind="mapping") from e
            root = _assign(root, target, value, script)

        logger.debug("Mapping produced %s", type(root).__name__)
        return root

    def compile_mapping(self, script: str) -> List[Tuple[str, str, Callable[..., Any]]]:
        """Parse a mapping into (target, expression, compiled) statements

        Raises:
            EvaluationError: If a statement is malformed or fails to compile
        """
        statements = []
        for statement in _split_statements(script):
            target, sep, expr = statement.partition("=")
            target, expr = target.strip(), expr.strip()
            if not sep or not expr or not TARGET_RE.match(target):
                raise EvaluationError(
                    script, f"expected '<path> = <expression>', got: {statement}", kind="mapping"
                )
            try:
                compiled = self.env.compile_expression(expr, undefined_to_none=True)
            except TemplateError as e:
                raise EvaluationError(script, f"{target} = {expr}: {e}", kind="mapping") from e
            statements.append((target, expr, compiled))
        return statements


def _split_statements(script: str) -> List[str]:
    """Split a script into statements, joining lines inside open brackets"""
    statements = []
    buffer = []
    depth = 0

    for line in script.splitlines():
        stripped = line.strip()
        if not buffer and (not stripped or stripped.startswith("#")):
            continue
        buffer.append(stripped)
        depth += _bracket_delta(stripped)
        if depth <= 0:
            statements.append(" ".join(buffer))
            buffer = []
            depth = 0

    if buffer:
        statements.append(" ".join(buffer))
    return statements


def _code_chars(text: str, start: int = 0) -> Iterator[Tuple[int, str]]:
    """Yield (index, char) for characters outside string literals"""
    quote = None
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        else:
            yield index, char


def _bracket_delta(line: str) -> int:
    """Net bracket depth change of a line, ignoring string literals"""
    delta = 0
    for _, char in _code_chars(line):
        if char in "([{":
            delta += 1
        elif char in ")]}":
            delta -= 1
    return delta


def _split_field(text: str) -> List[Tuple[str, Optional[str]]]:
    """Split a field into (literal, expression) pairs

    An expression runs from ``${!`` to the first ``}`` outside brackets and
    string literals. The final pair holds the trailing literal and None.

    Raises:
        EvaluationError: If an expression is not terminated
    """
    parts = []
    pos = 0
    while True:
        start = text.find(FIELD_START, pos)
        if start == -1:
            parts.append((text[pos:], None))
            return parts

        expr_start = start + len(FIELD_START)
        depth = 0
        end = None
        for index, char in _code_chars(text, expr_start):
            if char == FIELD_END and depth == 0:
                end = index
                break
            if char in "([{":
                depth += 1
            elif char in ")]}":
                depth -= 1
        if end is None:
            raise EvaluationError(text, f"unterminated expression at offset {start}")

        parts.append((text[pos:start], text[expr_start:end]))
        pos = end + len(FIELD_END)


def _assign(root: Any, target: str, value: Any, script: str) -> Any:
    """Set value at target within root and return the new root"""
    path = target.split(".")
    if path[0] == "root":
        path = path[1:]
    if not path:
        return value

    if root is None:
        root = {}
    if not isinstance(root, dict):
        raise EvaluationError(
            script, f"cannot assign {target}: root is not an object", kind="mapping"
        )

    node = root
    for segment in path[:-1]:
        child = node.get(segment)
        if child is None:
            child = node[segment] = {}
        elif not isinstance(child, dict):
            raise EvaluationError(
                script, f"cannot assign {target}: {segment} is not an object", kind="mapping"
            )
        node = child
    node[path[-1]] = value
    return root
