"""Draft generation collaborator.

The analysis pipeline is opaque to the engine: when a case has been
``ANALYZING`` for the fixed processing delay, the lifecycle calls
:meth:`DraftGenerator.generate` exactly once and attaches the result.
Generators must be synchronous and side-effect free.

:class:`StubDraftGenerator` is the built-in implementation.  It classifies
the denial from keywords in the case notes and file names and renders a
templated appeal letter for human review.
"""

from __future__ import annotations

from typing import Any, Protocol

# Ordered: first match wins.
_CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("prior_authorization", ("prior auth", "authorization", "preauth", "pre-auth")),
    ("coding_error", ("cpt", "icd", "modifier", "coding", "bundl")),
    ("eligibility", ("eligib", "coverage terminated", "not covered", "inactive member")),
    ("timely_filing", ("timely", "filing limit", "late submission")),
    ("duplicate_claim", ("duplicate",)),
]
_DEFAULT_CATEGORY = "medical_necessity"

_CATEGORY_LABELS: dict[str, str] = {
    "prior_authorization": "missing or invalid prior authorization",
    "coding_error": "a coding or modifier discrepancy",
    "eligibility": "a member eligibility determination",
    "timely_filing": "the timely filing limit",
    "duplicate_claim": "a suspected duplicate submission",
    "medical_necessity": "a medical necessity determination",
}


class DraftGenerator(Protocol):
    """Produces draft content for a completed analysis."""

    def generate(self, context: dict[str, Any]) -> dict[str, Any]:
        """Return at least ``summary``, ``draft_text`` and ``category``."""
        ...


def classify_denial(text: str) -> str:
    """Map free text to a denial category."""
    lowered = text.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return _DEFAULT_CATEGORY


class StubDraftGenerator:
    """Deterministic template-based generator."""

    def generate(self, context: dict[str, Any]) -> dict[str, Any]:
        file_names = [str(name) for name in context.get("file_names", [])]
        notes = str(context.get("notes") or "")
        category = classify_denial(" ".join([notes, *file_names]))
        label = _CATEGORY_LABELS[category]
        case_id = context.get("case_id", "unknown")

        summary = (
            f"Claim denial reviewed across {len(file_names)} document(s); "
            f"the denial appears to rest on {label}."
        )
        draft_text = "\n".join(
            [
                "To the Appeals Department:",
                "",
                f"We request reconsideration of the denied claim referenced in case {case_id}.",
                f"The denial appears to be based on {label}. The enclosed documentation",
                "supports the services as billed, and we ask that the claim be reprocessed.",
                "",
                "DRAFT - requires human review before submission.",
            ]
        )
        return {"summary": summary, "draft_text": draft_text, "category": category}
