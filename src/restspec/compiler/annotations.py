from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

_TAG_LINE = re.compile(r"^@([A-Za-z_][A-Za-z0-9_]*)\s*(.*)$")


def parse_annotation_text(text: Optional[str]) -> dict[str, Any]:
    """
    Turn a property doc text into schema annotations.

      Free text            -> "description"
      @minimum 3           -> {"minimum": 3}
      @pattern "^[a-z]+$"  -> {"pattern": "^[a-z]+$"}
      @ignore              -> {"ignore": True}

    Tag values are JSON-decoded; a value that does not decode is dropped.
    """
    if not text:
        return {}

    description_lines: list[str] = []
    tags: list[tuple[str, str]] = []

    for raw in text.strip().splitlines():
        line = raw.strip()
        m = _TAG_LINE.match(line)
        if m:
            tags.append((m.group(1), m.group(2).strip()))
        elif tags:
            # continuation of the previous tag value
            name, value = tags[-1]
            tags[-1] = (name, f"{value}{line}")
        else:
            description_lines.append(line)

    out: dict[str, Any] = {}
    description = "\n".join(description_lines).strip()
    if description:
        out["description"] = description

    for name, value in tags:
        if value == "":
            out[name] = True
            continue
        try:
            out[name] = json.loads(value)
        except json.JSONDecodeError:
            logger.debug("Dropping undecodable annotation @%s %r", name, value)
    return out


def merge_annotations(*sources: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Shallow merge, later sources win."""
    out: dict[str, Any] = {}
    for src in sources:
        if src:
            out.update(src)
    return out


def collect_mappings(items: Iterable[Any]) -> dict[str, Any]:
    return merge_annotations(*(i for i in items if isinstance(i, Mapping)))
