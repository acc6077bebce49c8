"""Prompt template loading.

Templates are markdown files beside this module. Those loaded with keyword
arguments are run through ``str.format``; the rest are returned verbatim so
they can carry literal JSON braces.
"""

from functools import lru_cache
from pathlib import Path

PROMPT_DIR = Path(__file__).parent


@lru_cache(maxsize=32)
def _load_raw(name: str) -> str:
    """Load a raw template from disk (cached).

    Raises:
        FileNotFoundError: If the template file doesn't exist
    """
    path = PROMPT_DIR / f"{name}.md"
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {name}.md")
    return path.read_text(encoding="utf-8")


def load_prompt(name: str, **kwargs: str) -> str:
    """Load a prompt template and format it with kwargs when given."""
    template = _load_raw(name)
    if kwargs:
        template = template.format(**kwargs)
    return template
