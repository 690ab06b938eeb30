from __future__ import annotations

import unicodedata
from typing import Dict

# Punctuation that generated text tends to "prettify".
PUNCT_EQUIV: Dict[str, str] = {
    # double quotes
    "“": '"',  # left double quotation mark
    "”": '"',  # right double quotation mark
    "„": '"',  # double low-9 quotation mark
    "‟": '"',  # double high-reversed-9 quotation mark
    "«": '"',  # left-pointing double angle quotation mark
    "»": '"',  # right-pointing double angle quotation mark
    # single quotes
    "‘": "'",  # left single quotation mark
    "’": "'",  # right single quotation mark
    "‚": "'",  # single low-9 quotation mark
    "‛": "'",  # single high-reversed-9 quotation mark
    "‹": "'",  # single left-pointing angle quotation mark
    "›": "'",  # single right-pointing angle quotation mark
    # dashes
    "‐": "-",  # hyphen
    "–": "-",  # en dash
    "—": "-",  # em dash
    "―": "-",  # horizontal bar
    "−": "-",  # minus sign
}

_PUNCT_TABLE = str.maketrans(PUNCT_EQUIV)

_UNESCAPES = (
    ("\\`", "`"),
    ("\\'", "'"),
    ('\\"', '"'),
)


def canonicalize(s: str) -> str:
    """Normalize text for comparison only; never used on written content."""
    out = unicodedata.normalize("NFC", s)
    out = out.translate(_PUNCT_TABLE)
    for escaped, plain in _UNESCAPES:
        out = out.replace(escaped, plain)
    return out
