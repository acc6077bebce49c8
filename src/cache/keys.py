"""Cache key derivation."""

import hashlib
import re

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")


def normalize_input(text: str) -> str:
    """Lowercase, collapse whitespace, trim and drop punctuation."""
    return _PUNCTUATION.sub("", _WHITESPACE.sub(" ", text.lower()).strip())


def generate_key(text: str, platform: str, complexity: str, provider: str = "default") -> str:
    data = f"{normalize_input(text)}:{platform}:{complexity}:{provider}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def input_hash(text: str) -> str:
    return hashlib.sha256(normalize_input(text).encode("utf-8")).hexdigest()
