"""Jinja2 template rendering for model prompts."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from plainness.categories import CATEGORY_IDS, combined_guidance

_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

TRUNCATION_MARKER = "...[truncated]"


def _truncate(value: str, limit: int) -> str:
    """Jinja2 filter: cut *value* to *limit* chars, marking the cut."""
    if len(value) <= limit:
        return value
    return value[:limit] + TRUNCATION_MARKER


def _get_env() -> Environment:
    """Create a Jinja2 environment loading from plainness/templates/."""
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=False,
    )
    env.filters["truncate_marked"] = _truncate
    return env


def _author_vars(author: dict[str, Any] | None) -> dict[str, Any]:
    author = author or {}
    return {
        "author_name": author.get("name") or None,
        "author_description": author.get("description") or None,
    }


def suggestion_target(limit: int | str, exhaustive_range: str) -> str:
    """Describe the desired suggestion count for the prompt."""
    if limit == "exhaustive":
        return exhaustive_range
    return str(limit)


def render_analysis_system(
    *,
    categories: list[str],
    limit: int | str,
    exhaustive_range: str = "25-40",
    author: dict[str, Any] | None = None,
) -> str:
    """Render the system prompt for suggestion analysis."""
    template = _get_env().get_template("analysis_system.md")
    return template.render(
        guidance=combined_guidance(categories),
        target=suggestion_target(limit, exhaustive_range),
        category_ids="|".join(CATEGORY_IDS),
        **_author_vars(author),
    )


def render_analysis_request(document: str) -> str:
    return f"Analyze this text and return suggestions as a JSON array:\n\n{document}"


def render_prepare_system() -> str:
    """Render the system prompt for the whole-document prepare rewrite."""
    return _get_env().get_template("prepare_system.md").render()


def render_prepare_request(text: str, *, segmented: bool) -> str:
    if segmented:
        return (
            "Please prepare this section of a longer document. Convert footnotes to MLA "
            "inline citations and align terminology with the Church Style Guide. "
            f"Return ONLY the transformed text:\n\n{text}"
        )
    return (
        "Please prepare this document by converting footnotes to MLA inline citations "
        f"and aligning terminology with the Church Style Guide:\n\n{text}"
    )


def render_chat_system(
    *,
    document: str,
    pending: int,
    preview_chars: int = 3000,
    author: dict[str, Any] | None = None,
) -> str:
    """Render the conversational system prompt with a document preview."""
    template = _get_env().get_template("chat_system.md")
    return template.render(
        document=document,
        preview_chars=preview_chars,
        pending=pending,
        **_author_vars(author),
    )
