"""Prompt construction and response cleanup for the generative category stage."""

from __future__ import annotations

import re
from collections.abc import Sequence

from .models import CategorizationInput

_RESPONSE_JUNK_RE = re.compile(r"[^\w\s&]")


def build_categorization_prompt(tx: CategorizationInput, category_names: Sequence[str]) -> str:
    """Return the single-turn prompt listing the allowed categories and the transaction."""

    return (
        "Categorize this transaction into one of the following categories: "
        f"{', '.join(category_names)}\n"
        "\n"
        "Transaction details:\n"
        f"- Name: {tx.name}\n"
        f"- Description: {tx.description or 'N/A'}\n"
        f"- Merchant: {tx.merchant or 'N/A'}\n"
        f"- Amount: ${abs(tx.amount):.2f}\n"
        "\n"
        "Please respond with only the category name from the list above."
    )


def clean_category_response(text: str) -> str:
    """Strip punctuation (keeping ``&``) and collapse whitespace in a model reply."""

    return " ".join(_RESPONSE_JUNK_RE.sub("", text).split())


__all__ = ["build_categorization_prompt", "clean_category_response"]
