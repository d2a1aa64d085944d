"""
Best-effort extraction of the JSON object inside raw model output.

Models wrap their tool call in markdown fences, prepend commentary, or append an explanation.
:func:`extract_json_span` cuts out the part that is most likely the JSON object:

1. the content of the first fenced code block, if there is one;
2. otherwise the first ``{`` through its matching ``}`` (or through the last ``}``);
3. otherwise the whole text.

It does not parse JSON; decoding and validation happen in :mod:`expensebot.tools.contract`.
"""

import re
from typing import Optional


class ToolCallParseError(RuntimeError):
    """Raised when model output holds nothing that could be a JSON tool call."""


_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\r?\n?(.*?)```", re.DOTALL | re.IGNORECASE)


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------
def _strip_control_chars(s: str) -> str:
    return "".join(ch for ch in s if ch >= " " or ch in "\n\r\t")


def _skip_string(s: str, i: int) -> int:
    """Given s[i] == '"', return the index just past the closing quote (or len(s))."""
    i += 1
    esc = False
    while i < len(s):
        ch = s[i]
        if esc:
            esc = False
        elif ch == "\\":
            esc = True
        elif ch == '"':
            return i + 1
        i += 1
    return i


def _find_matching_brace(s: str, i: int) -> Optional[int]:
    """Given s[i] == '{', return the index just past its matching '}', or None if unbalanced."""
    depth = 0
    while i < len(s):
        ch = s[i]
        if ch == '"':
            i = _skip_string(s, i)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
def extract_json_span(text: str) -> str:
    """
    Return the span of *text* that most likely holds the JSON tool call.

    Raises
    ------
    ToolCallParseError
        If *text* is empty or contains no ``{`` at all.
    """
    if not text or not text.strip():
        raise ToolCallParseError("model output is empty")
    if "{" not in text:
        raise ToolCallParseError("model output contains no JSON object")

    text = _strip_control_chars(text)

    match = _FENCE_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    open_idx = text.find("{")
    end = _find_matching_brace(text, open_idx)
    if end is not None:
        return text[open_idx:end]

    close_idx = text.rfind("}")
    if close_idx > open_idx:
        return text[open_idx : close_idx + 1]

    return text
