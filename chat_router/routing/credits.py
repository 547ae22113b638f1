"""Opt-in detection for cost-incurring assistant behaviour.

A turn unlocks paid tools only when the latest user message contains one of
the phrases below. The check is a policy nicety, not an access control: it
is re-evaluated on every turn and nothing is remembered between turns.
"""

from __future__ import annotations

AUTHORIZATION_PHRASES: tuple[str, ...] = (
    "use créditos",
    "usar créditos",
    "autorizo gasto",
    "pode gastar",
    "use credits",
    "autorizo uso de créditos",
    "quero usar créditos",
    "pode usar créditos",
    "gastar créditos",
    "usar saldo",
)


def is_authorized(message: str | None) -> bool:
    """Return ``True`` when ``message`` contains an authorization phrase."""

    text = (message or "").lower()
    return any(phrase in text for phrase in AUTHORIZATION_PHRASES)


__all__ = ["AUTHORIZATION_PHRASES", "is_authorized"]
