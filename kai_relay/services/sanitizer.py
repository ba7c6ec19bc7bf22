from __future__ import annotations

import re

# Model boundary markers such as <|im_end|>, <|start_header_id|> and the
# sentencepiece <s>/</s> pair.
_SENTINEL_PATTERN = re.compile(r"<\|[^|]+\|>|</s>|<s>")
_LEADING_QUOTE = re.compile(r"^[\"']")
_TRAILING_QUOTE = re.compile(r"[\"']$")
_TRAILING_TERMINATOR = re.compile(r"[.!?]$")


def sanitize_response(text: str) -> str:
    """Strip sentinel markers from generated text and trim surrounding whitespace."""

    cleaned = text
    while True:
        # Removing one marker can join the halves of another, e.g. "<<|a|>s>".
        stripped = _SENTINEL_PATTERN.sub("", cleaned)
        if stripped == cleaned:
            break
        cleaned = stripped
    return cleaned.strip()


def clean_title(text: str, max_length: int = 50) -> str:
    """Turn a raw title completion into a display title."""

    title = sanitize_response(text)
    title = _LEADING_QUOTE.sub("", title, count=1)
    title = _TRAILING_QUOTE.sub("", title, count=1)
    title = _TRAILING_TERMINATOR.sub("", title.strip(), count=1)
    return title.strip()[:max_length]
