"""
Script sanitizer — strips structural markup before text goes to HeyGen TTS.

Generated scripts carry labels like "[HOOK]" or "**BODY:**" and markdown
emphasis. The speech engine would read those out loud, so only the spoken
words are kept.
"""

import re
from typing import Optional

# Longer labels first so "CLOSING STATEMENT" is not split into two removals
SECTION_LABELS = ("CLOSING STATEMENT", "CLOSING", "STATEMENT", "HOOK", "BODY", "CTA")

_LABEL_ALT = "|".join(re.escape(label) for label in SECTION_LABELS)

_BRACKETED = re.compile(r"\[[^\]]*?\]")
_STRAY_BRACKET = re.compile(r"[\[\]]")
# **HOOK:**, **HOOK** or **HOOK**: anywhere in the text
_EMPHASIZED_HEADER = re.compile(
    rf"\*\*\s*(?:{_LABEL_ALT})\s*:?\s*\*\*:?[ \t]*", re.IGNORECASE
)
# HOOK: at line start, or the bare label alone on its line
_PLAIN_HEADER = re.compile(
    rf"^[ \t]*(?:{_LABEL_ALT})[ \t]*(?::[ \t]*|(?=\n|$))", re.IGNORECASE | re.MULTILINE
)
_EMPHASIS = re.compile(r"\*\*")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_WHITESPACE = re.compile(r"\s+")
_PERIODS = re.compile(r"\.{2,}")
_BANGS = re.compile(r"!{2,}")
_QUESTIONS = re.compile(r"\?{2,}")


def _clean_once(text: str) -> str:
    cleaned = _BRACKETED.sub("", text)
    cleaned = _STRAY_BRACKET.sub("", cleaned)

    # Headers must go before generic ** removal, otherwise "**HOOK:**"
    # degrades to "HOOK:" mid-line and is no longer recognizable.
    cleaned = _EMPHASIZED_HEADER.sub("", cleaned)
    cleaned = _PLAIN_HEADER.sub("", cleaned)

    cleaned = _EMPHASIS.sub("", cleaned)

    cleaned = _PARAGRAPH_BREAK.sub("\n", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned)
    cleaned = cleaned.strip()

    cleaned = _PERIODS.sub(".", cleaned)
    cleaned = _BANGS.sub("!", cleaned)
    cleaned = _QUESTIONS.sub("?", cleaned)
    return cleaned


def sanitize_script(text: Optional[str]) -> str:
    """
    Return only the natural dialogue of a script.

    Removing one marker can expose another (e.g. "[x]HOOK: hi" or
    "HO**OK:"), so the pass repeats until the text is stable. After the
    first pass every further change is a deletion, so this terminates.
    """
    if not text:
        return ""

    current = _clean_once(text)
    while True:
        cleaned = _clean_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned
