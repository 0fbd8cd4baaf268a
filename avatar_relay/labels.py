"""Display-label hygiene for relay clients.

Labels are shown on the avatar renderer and in the operator panel, so they
are normalised, length-capped and screened with ``better-profanity`` loaded
with a curated list of severe slurs only. General profanity is not flagged.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

from better_profanity import profanity

SEVERE_SLURS: list[str] = [
    # Anti-Black
    "nigger",
    "nigga",
    "niggers",
    "niggas",
    "coon",
    "coons",
    "darkie",
    "darkies",
    "jiggaboo",
    "jigaboo",
    "sambo",
    # Anti-Asian
    "chink",
    "chinks",
    "gook",
    "gooks",
    "zipperhead",
    # Anti-Hispanic
    "spic",
    "spick",
    "spics",
    "wetback",
    "wetbacks",
    "beaner",
    "beaners",
    # Anti-Jewish
    "kike",
    "kikes",
    # Anti-LGBTQ
    "faggot",
    "faggots",
    "fag",
    "fags",
    "dyke",
    "dykes",
    "tranny",
    "trannies",
    # Anti-Roma / general ethnic
    "gyppo",
    "raghead",
    "ragheads",
    "towelhead",
    "towelheads",
    "camel jockey",
    # Disability-related slurs
    "retard",
    "retards",
    "retarded",
]

profanity.load_censor_words(SEVERE_SLURS)

# Invisible characters that could be inserted to bypass the filter
_INVISIBLE_RE = re.compile(
    "["
    "\u200b\u200c\u200d"  # zero-width space, non-joiner, joiner
    "\u200e\u200f"  # LTR / RTL marks
    "\u2060\ufeff"  # word joiner, BOM
    "\u00ad\u034f\u061c"  # soft hyphen, grapheme joiner, Arabic letter mark
    "\u115f\u1160\u17b4\u17b5\u180e"  # fillers
    "]+"
)
_WHITESPACE_RE = re.compile(r"\s+")


def normalise_label(text: str) -> str:
    """Strip invisible and control characters, NFKC-normalise, collapse whitespace."""
    text = _INVISIBLE_RE.sub("", text)
    text = unicodedata.normalize("NFKC", text)
    text = _WHITESPACE_RE.sub(" ", text)
    text = "".join(ch for ch in text if unicodedata.category(ch)[0] != "C")
    return text.strip()


def contains_slur(text: str) -> bool:
    if not text:
        return False
    # NFKD splits accented look-alikes so the word list still matches
    return profanity.contains_profanity(unicodedata.normalize("NFKD", text))


def clean_display_label(raw: Optional[str], max_length: int = 40) -> Optional[str]:
    """Return a displayable label, or ``None`` when a generated one should be used."""
    if not raw:
        return None
    label = normalise_label(raw)[:max_length].rstrip()
    if not label or contains_slur(label):
        return None
    return label
