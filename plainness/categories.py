"""Editorial focus categories.

Each suggestion carries exactly one category (the model's ``mode`` field).
The guidance paragraph of every active category is concatenated into the
analysis system prompt.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Category:
    """One editorial focus area."""

    id: str
    name: str
    description: str
    guidance: str


CATEGORIES: tuple[Category, ...] = (
    Category(
        id="clarity",
        name="Clarity & Accessibility",
        description="Making theological concepts accessible to interfaith audiences",
        guidance=(
            "Focus on CLARITY & ACCESSIBILITY for interfaith audiences. Identify phrases that:\n"
            "- Use insider religious jargon that non-LDS readers may not understand\n"
            "- Have complex theological concepts that could be simplified\n"
            "- Assume prior knowledge of LDS doctrine or scripture\n"
            "- Could be rephrased for broader Christian or interfaith comprehension\n"
            "Suggest alternatives that preserve doctrinal accuracy while improving accessibility."
        ),
    ),
    Category(
        id="grammar",
        name="Grammar & Style",
        description="Polish language, syntax, and flow",
        guidance=(
            "Focus on GRAMMAR & STYLE. Identify:\n"
            "- Grammatical errors or awkward constructions\n"
            "- Overly long or convoluted sentences\n"
            "- Passive voice that could be active\n"
            "- Repetitive word choices\n"
            "- Flow and rhythm improvements\n"
            "Suggest polished alternatives that enhance readability."
        ),
    ),
    Category(
        id="tone",
        name="Tone Consistency",
        description="Balance scholarly depth with pastoral warmth",
        guidance=(
            "Focus on TONE CONSISTENCY, balancing scholarly depth with pastoral warmth. "
            "Identify phrases that:\n"
            "- Sound overly academic or cold for devotional writing\n"
            "- Are too casual for the scholarly nature of the work\n"
            "- Could better blend intellectual rigor with spiritual invitation\n"
            "- Need adjustment to speak both to the mind and heart\n"
            "Suggest alternatives that achieve the balance of a thoughtful minister-scholar."
        ),
    ),
    Category(
        id="scripture",
        name="Scripture References",
        description="Verify and enhance scriptural citations",
        guidance=(
            "Focus on SCRIPTURE REFERENCES. Identify:\n"
            "- Scripture citations that could be added to support claims\n"
            "- Existing references that may need verification\n"
            "- Opportunities to connect to additional scriptural witnesses\n"
            "- Places where cross-references would strengthen the argument\n"
            "Suggest specific verse additions or reference improvements."
        ),
    ),
    Category(
        id="terminology",
        name="Church Style Guide",
        description="Align with current LDS terminology guidelines",
        guidance=(
            "Focus on CHURCH STYLE GUIDE alignment (per the August 2018 guidelines). Identify:\n"
            '- "Mormon" that should be "Latter-day Saint" '
            "(except in proper nouns like Book of Mormon)\n"
            '- "LDS Church" that should be "The Church of Jesus Christ of Latter-day Saints" '
            'or "the Church" on subsequent references\n'
            '- "Mormonism" that should be "the restored gospel of Jesus Christ" or similar\n'
            "- Other terminology that doesn't align with current Church communication guidelines\n"
            "Suggest corrections that align with the current style guide."
        ),
    ),
)

CATEGORY_IDS: tuple[str, ...] = tuple(c.id for c in CATEGORIES)

_BY_ID = {c.id: c for c in CATEGORIES}


def get_category(category_id: str) -> Category:
    """Look up a category by id. Raises KeyError for unknown ids."""
    return _BY_ID[category_id]


def is_category(value: object) -> bool:
    return isinstance(value, str) and value in _BY_ID


def normalize_categories(ids: object) -> list[str]:
    """Return known category ids from *ids*, deduplicated, in canonical order.

    Unknown ids and non-string values are ignored.
    """
    if not isinstance(ids, (list, tuple, set, frozenset)):
        return []
    wanted = {i for i in ids if is_category(i)}
    return [cid for cid in CATEGORY_IDS if cid in wanted]


def combined_guidance(ids: list[str]) -> str:
    """Concatenate the guidance text of each category, blank-line separated."""
    return "\n\n".join(get_category(cid).guidance for cid in ids)
