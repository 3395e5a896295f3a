from __future__ import annotations

from pathlib import Path


def load_prompt(filename: str) -> str:
    """Load a prompt text file shipped with the codebase."""

    prompt_dir = Path(__file__).resolve().parent
    path = prompt_dir / filename
    if not path.exists():
        raise RuntimeError(f"Prompt file not found: {filename}")
    return path.read_text(encoding="utf-8").strip() + "\n"


def render_prompt(filename: str, **values: str) -> str:
    """Load a prompt template and fill its ``{placeholders}``."""

    try:
        return load_prompt(filename).format(**values)
    except KeyError as exc:
        raise RuntimeError(f"Prompt {filename} needs value for {exc}") from exc
