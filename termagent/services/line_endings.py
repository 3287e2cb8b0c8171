from __future__ import annotations

import os

CRLF = "\r\n"
LF = "\n"
CR = "\r"


def detect_line_ending(content: str, default: str = os.linesep) -> str:
    """Return the first line ending style found in ``content``, or ``default``."""
    if not content:
        return default
    if CRLF in content:
        return CRLF
    if LF in content:
        return LF
    return default


def normalize_line_endings(content: str, target: str) -> str:
    if not content:
        return content
    return content.replace(CRLF, LF).replace(LF, target)


def line_ending_name(line_ending: str) -> str:
    return {CRLF: "CRLF", LF: "LF", CR: "CR"}.get(line_ending, "Unknown")
