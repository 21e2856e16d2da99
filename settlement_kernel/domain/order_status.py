"""
Order status normalisation at the order-management boundary.

Order statuses arrive as free text in several locales ("Concluído",
"Concluido", "COMPLETED").  ``is_completed`` is the one predicate the kernel
uses to decide whether an order carries a settleable commission; no other
module compares status strings.
"""

import unicodedata
from typing import Iterable


def normalize_order_status(status: str | None) -> str:
    """Strip diacritics and surrounding space, then upper-case."""
    decomposed = unicodedata.normalize("NFD", status or "")
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.strip().upper()


def _tokens(tokens: Iterable[str] | None, attr: str) -> tuple[str, ...]:
    if tokens is not None:
        return tuple(tokens)
    from settlement_kernel.settings import get_settings

    return getattr(get_settings(), attr)


def is_completed(status: str | None, tokens: Iterable[str] | None = None) -> bool:
    """True when ``status`` is any locale spelling of "completed"."""
    return normalize_order_status(status) in _tokens(tokens, "completed_status_tokens")


def is_cancelled(status: str | None, tokens: Iterable[str] | None = None) -> bool:
    """True for cancelled or rejected orders (substring match, e.g. CANCELADO_CLIENTE)."""
    normalized = normalize_order_status(status)
    return any(token in normalized for token in _tokens(tokens, "cancelled_status_tokens"))
