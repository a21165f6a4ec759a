from __future__ import annotations

import ast
import inspect
import textwrap
from functools import lru_cache
from typing import Optional

from restspec.domain.descriptors import SourceLocation


def _safe_parse(source: str) -> Optional[ast.Module]:
    try:
        return ast.parse(textwrap.dedent(source))
    except SyntaxError:
        return None


def _class_source(cls: type) -> Optional[str]:
    try:
        return inspect.getsource(cls)
    except (OSError, TypeError):
        # builtins, classes created at runtime, REPL definitions
        return None


@lru_cache(maxsize=None)
def attribute_docstrings(cls: type) -> dict[str, str]:
    """
    Attribute docstrings declared in the class body:

        class User(TypedDict):
            age: int
            \"\"\"Age in years.

            @minimum 0
            \"\"\"

    Only the class's own body is read, not its bases.
    """
    source = _class_source(cls)
    if source is None:
        return {}
    tree = _safe_parse(source)
    if tree is None:
        return {}

    class_def = next((n for n in tree.body if isinstance(n, ast.ClassDef)), None)
    if class_def is None:
        return {}

    out: dict[str, str] = {}
    body = class_def.body
    for node, following in zip(body, body[1:]):
        if not isinstance(node, ast.AnnAssign) or not isinstance(node.target, ast.Name):
            continue
        if (
            isinstance(following, ast.Expr)
            and isinstance(following.value, ast.Constant)
            and isinstance(following.value.value, str)
        ):
            out[node.target.id] = inspect.cleandoc(following.value.value)
    return out


def source_location(obj: object) -> Optional[SourceLocation]:
    """Best-effort declaration site of a class or function."""
    try:
        file_path = inspect.getsourcefile(obj)  # type: ignore[arg-type]
        _, line = inspect.getsourcelines(obj)  # type: ignore[arg-type]
    except (OSError, TypeError):
        return None
    if file_path is None:
        return None
    return SourceLocation(file_path=file_path, line=line, column=0)
