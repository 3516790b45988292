"""
Scriptable Filter: Predicate Supplied as Data

Evaluates a user-supplied boolean expression against one annotation
with the simpleeval sandboxed evaluator. The expression is parsed once
at construction; evaluation binds a fresh name table per call.

Names visible to the script (a deep copy, so scripts never reach the
stored annotation):
    annotation   dict view: coordinate, group, payload, timestamp
                 (both annotation.group and annotation["group"] work)
    coordinate, group, payload, timestamp   shortcuts

Fail-closed:
    Any evaluator exception or a non-bool result is logged as a
    ScriptEvaluationError and the annotation is rejected. Nothing
    propagates out of accepts().

Usage:
    f = ScriptableFilter('group == "alerts" and payload["severity"] > 2')
"""

from __future__ import annotations

import ast
import copy
from typing import Any

from simpleeval import DEFAULT_FUNCTIONS, InvalidExpression, SimpleEval

from annomesh.core.errors import ScriptEvaluationError
from annomesh.core.types import Annotation
from annomesh.observability.logging import StructuredLogger

logger = StructuredLogger("annomesh.filter")

SCRIPT_FUNCTIONS: dict[str, Any] = {
    **DEFAULT_FUNCTIONS,
    "len": len,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
}


class ScriptableFilter:
    """Boolean expression evaluated per annotation."""

    __slots__ = ("_script", "_parsed", "_failures")

    def __init__(self, script: str) -> None:
        if not isinstance(script, str) or not script.strip():
            raise ValueError("script must be a non-empty expression")
        try:
            parsed = SimpleEval.parse(script)
        except (SyntaxError, InvalidExpression) as e:
            raise ValueError(f"script does not parse: {e}") from e
        if isinstance(parsed, ast.stmt) and not isinstance(parsed, ast.Expr):
            raise ValueError("script must be a single expression, not a statement")
        self._script = script
        self._parsed = parsed
        self._failures = 0

    @property
    def script(self) -> str:
        return self._script

    @property
    def failures(self) -> int:
        """Annotations rejected because the script failed on them."""
        return self._failures

    def accepts(self, annotation: Annotation[Any]) -> bool:
        try:
            # Detached copy: scripts may call methods on payload values
            view = copy.deepcopy(annotation.to_dict())
            evaluator = SimpleEval(
                functions=SCRIPT_FUNCTIONS,
                names={"annotation": view, **view},
            )
            value = evaluator.eval(self._script, previously_parsed=self._parsed)
        except Exception as e:
            return self._reject(annotation, ScriptEvaluationError.raised(self._script, e))

        if not isinstance(value, bool):
            return self._reject(annotation, ScriptEvaluationError.non_boolean(self._script, value))
        return value

    def _reject(self, annotation: Annotation[Any], error: ScriptEvaluationError) -> bool:
        self._failures += 1
        logger.warning(
            "Script evaluation failed; annotation rejected",
            error=error.to_dict(),
            annotation_group=annotation.group,
            annotation_timestamp=annotation.write_timestamp,
        )
        return False

    def __repr__(self) -> str:
        return f"ScriptableFilter({self._script!r})"
