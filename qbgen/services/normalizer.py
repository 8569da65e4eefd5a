# qbgen/services/normalizer.py
"""
Syntax normalizer for raw model output.

normalize_text is idempotent: feeding its output back in returns the same
string, and already-clean JSON comes back unchanged apart from trimming.
Nothing inside a JSON string literal is rewritten.
"""
from __future__ import annotations

import re
from typing import Iterator, Tuple

# 한 줄 전체가 ``` 또는 ```json 인 펜스 줄
_FENCE_LINE_RE = re.compile(r"^[ \t]*```[A-Za-z0-9_-]*[ \t]*$\n?", re.M)
# 한 줄로 감싼 경우: ```json{...}```
_LEADING_FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*")
_TRAILING_FENCE_RE = re.compile(r"```$")

# 작은따옴표/프라임 기호만 ' 로 정규화 (문자열 리터럴 밖에서만)
_SMART_QUOTES = {
    "‘": "'", "’": "'", "′": "'",
}

_BLANK_RUN_RE = re.compile(r"\n[ \t]*(?:\n[ \t]*)+\n")
_TRAILING_WS_RE = re.compile(r"[ \t]+\n")


def strip_code_fences(txt: str) -> str:
    """Remove fence lines and a fence pair wrapping the whole payload."""
    s = (txt or "").strip()
    while True:
        fixed = _FENCE_LINE_RE.sub("", s).strip()
        if fixed.startswith("```"):
            fixed = _LEADING_FENCE_RE.sub("", fixed, count=1).strip()
            fixed = _TRAILING_FENCE_RE.sub("", fixed).strip()
        if fixed == s:
            return s
        s = fixed


def split_string_literals(s: str) -> Iterator[Tuple[bool, str]]:
    """Yield (inside_string, chunk) pieces; quotes belong to the string chunk."""
    start = 0
    in_str = False
    esc = False
    for i, ch in enumerate(s):
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                yield True, s[start:i + 1]
                start = i + 1
                in_str = False
        elif ch == '"':
            if i > start:
                yield False, s[start:i]
            start = i
            in_str = True
    if start < len(s):
        yield in_str, s[start:]


def _normalize_quotes(s: str) -> str:
    out = []
    for inside, chunk in split_string_literals(s):
        if not inside:
            for k, v in _SMART_QUOTES.items():
                chunk = chunk.replace(k, v)
        out.append(chunk)
    return "".join(out)


def drop_trailing_separators(s: str) -> str:
    """
    Remove commas that directly precede a closing } or ].
    String literals are left alone (simple state machine, same idea as the
    circled-number quoting pass).
    """
    out = []
    in_str = False
    esc = False
    pending = None  # (comma, whitespace) 보류 버퍼
    for ch in s:
        if in_str:
            out.append(ch)
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            continue

        if pending is not None:
            if ch in " \t\r\n":
                pending.append(ch)
                continue
            if ch in "}]":
                out.extend(pending[1:])  # 쉼표만 버림
            else:
                out.extend(pending)
            pending = None

        if ch == ",":
            pending = [ch]
            continue
        if ch == '"':
            in_str = True
        out.append(ch)

    if pending is not None:
        out.extend(pending)
    return "".join(out)


def normalize_text(raw: str) -> str:
    """
    1) 줄바꿈 통일 + 코드펜스 제거
    2) 문자열 밖의 스마트 따옴표 정규화
    3) 닫는 괄호 앞 트레일링 콤마 제거 (",,}" 같은 연속 케이스까지)
    4) 줄 끝 공백 정리 + 연속된 빈 줄 축약

    Whitespace cleanup runs last because comma removal can leave spaces
    at the end of a line.
    """
    s = (raw or "").replace("\r\n", "\n").replace("\r", "\n")
    s = strip_code_fences(s)
    s = _normalize_quotes(s)
    while True:
        fixed = drop_trailing_separators(s)
        if fixed == s:
            break
        s = fixed
    s = _TRAILING_WS_RE.sub("\n", s)
    s = _BLANK_RUN_RE.sub("\n\n", s)
    return s.strip()
