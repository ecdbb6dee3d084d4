from __future__ import annotations

import re
from typing import Optional, Tuple

# Not exhaustive; the provider blocklist is the primary signal
PROFANITY_WORDS: Tuple[str, ...] = (
    "fuck",
    "shit",
    "bitch",
    "asshole",
    "dick",
    "bastard",
    "cunt",
)

# Shared by the heuristic and the redactor so anything matched is also masked
PROFANITY_RE = re.compile(r"\b(?:" + "|".join(PROFANITY_WORDS) + r")\b", re.I)

MASK = "***"


def contains_profanity(text: Optional[str]) -> bool:
    return bool(text) and PROFANITY_RE.search(text) is not None


def redact(text: Optional[str]) -> str:
    """Mask profane words as their first letter followed by ``***``.

    The surrounding text is left untouched. Applying it twice gives the same
    result as applying it once, since ``f***`` no longer matches a whole word.
    """
    original = text or ""

    def repl(match: re.Match) -> str:
        return match.group(0)[0] + MASK

    return PROFANITY_RE.sub(repl, original)
