"""Text normalisation shared by knowledge ingestion and retrieval.

Markdown and markup are flattened to their visible text, code and comments
are dropped, whitespace is collapsed and the result is lower-cased. The
rules are applied until the text stops changing, so
``normalize(normalize(x)) == normalize(x)``.
"""

from __future__ import annotations

import logging
import re
from typing import List, Tuple

logger = logging.getLogger(__name__)

_RULES: List[Tuple[re.Pattern[str], str]] = [
    # Code blocks and inline code, contents included.
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"`.*?`"), ""),
    # Headers keep their text.
    (re.compile(r"#{1,6}\s*(.*)"), r"\1"),
    # Images keep alt text, links keep their label.
    (re.compile(r"!\[(.*?)\]\(.*?\)"), r"\1"),
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),
    # URLs reduced to domain + path.
    (re.compile(r"(https?://)?(www\.)?([^\s]+\.[^\s]+)"), r"\3"),
    # Chat mentions such as <@123> or <@&456>.
    (re.compile(r"<@[!&]?\d+>"), ""),
    (re.compile(r"<[^>]*>"), ""),
    # Horizontal rules.
    (re.compile(r"^\s*[-*_]{3,}\s*$", re.MULTILINE), ""),
    # Block and line comments.
    (re.compile(r"/\*[\s\S]*?\*/"), ""),
    (re.compile(r"//.*"), ""),
    (re.compile(r"\s+"), " "),
    (re.compile(r"[^a-zA-Z0-9\s\-_./:?=&]"), ""),
]

# Every rule only deletes characters, so the loop terminates well before this.
_MAX_PASSES = 16


def _normalize_once(text: str) -> str:
    for pattern, replacement in _RULES:
        text = pattern.sub(replacement, text)
    return text.strip().lower()


def normalize(content: str) -> str:
    if not content or not isinstance(content, str):
        logger.warning("Invalid input for normalisation")
        return ""

    text = _normalize_once(content)
    for _ in range(_MAX_PASSES):
        again = _normalize_once(text)
        if again == text:
            break
        text = again
    return text
