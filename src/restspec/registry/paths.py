from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

# Segment parameter styles: /users/:id, /users/{id}, /users/<id>
_PARAM_COLON = re.compile(r"^:([A-Za-z_][A-Za-z0-9_]*)$")
_PARAM_BRACE = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")
_PARAM_ANGLE = re.compile(r"^<([A-Za-z_][A-Za-z0-9_]*)>$")
_MULTI_SLASH = re.compile(r"/{2,}")

# "/<source>/<flags>" as persisted
_ENCODED_PATTERN = re.compile(r"^/(.*)/([aimsux]*)$", re.DOTALL)

_FLAG_BITS = {
    "a": re.ASCII,
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": re.UNICODE,
    "x": re.VERBOSE,
}


@dataclass(frozen=True)
class PathMatcher:
    source: str
    flags: str = "i"

    def encode(self) -> str:
        return f"/{self.source}/{self.flags}"

    def compile(self) -> re.Pattern[str]:
        return re.compile(self.source, _flags_to_bits(self.flags))


def _flags_to_bits(flags: str) -> int:
    bits = 0
    for f in flags:
        bits |= _FLAG_BITS[f]
    return bits


def _param_name(segment: str) -> Optional[str]:
    for rx in (_PARAM_COLON, _PARAM_BRACE, _PARAM_ANGLE):
        m = rx.match(segment)
        if m:
            return m.group(1)
    return None


def normalize_path(path: str) -> str:
    p = (path or "").strip()
    if not p.startswith("/"):
        p = "/" + p
    p = _MULTI_SLASH.sub("/", p)
    if p != "/" and p.endswith("/"):
        p = p[:-1]
    return p


def compile_path(template: str) -> PathMatcher:
    """
    /users/:id/posts -> ^/users/(?P<id>[^/#?]+?)/posts/?$  (case-insensitive)
    """
    parts: list[str] = []
    for seg in normalize_path(template).strip("/").split("/"):
        if not seg:
            continue
        name = _param_name(seg)
        if name is not None:
            parts.append(f"/(?P<{name}>[^/#?]+?)")
        else:
            parts.append("/" + re.escape(seg))

    body = "".join(parts)
    return PathMatcher(source=f"^{body}/?$", flags="i")


def parse_pattern(encoded: str) -> Optional[re.Pattern[str]]:
    """Reparse a persisted matcher. None when it is malformed."""
    m = _ENCODED_PATTERN.match(encoded or "")
    if not m:
        return None
    source, flags = m.group(1), m.group(2)
    try:
        return re.compile(source, _flags_to_bits(flags))
    except (re.error, ValueError):
        return None


def match_params(pattern: re.Pattern[str], path: str) -> Optional[dict[str, str]]:
    m = pattern.match(path)
    if not m:
        return None
    return m.groupdict()
