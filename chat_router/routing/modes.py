"""Keyword-based mode classification for inbound chat messages.

The classifier is a fast, deterministic pre-filter: each mode owns a fixed
keyword list and the lists are evaluated in strict priority order, with an
evidence threshold per mode. Identical input always yields identical output.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum


class Mode(str, Enum):
    """Behavioural personas that govern the generation prompt."""

    SALES = "sales"
    SUPPORT = "support"
    MARKETING = "marketing"
    FINANCIAL_TUTOR = "financial_tutor"
    HANDOFF_HUMAN = "handoff_human"


MODE_KEYWORDS: Mapping[Mode, tuple[str, ...]] = {
    Mode.SALES: (
        "preço",
        "plano",
        "contratar",
        "upgrade",
        "valor",
        "quanto custa",
        "pacote",
        "assinar",
        "comprar",
        "mensalidade",
        "investimento",
    ),
    Mode.SUPPORT: (
        "erro",
        "problema",
        "ajuda",
        "não funciona",
        "bug",
        "dúvida",
        "como faço",
        "suporte",
        "configurar",
        "instalar",
    ),
    Mode.HANDOFF_HUMAN: (
        "humano",
        "pessoa real",
        "atendente",
        "falar com alguém",
        "reclamação formal",
        "falar com pessoa",
        "atendimento humano",
    ),
    Mode.MARKETING: (
        "novidades",
        "promoção",
        "newsletter",
        "conteúdo",
        "dicas",
        "lançamento",
    ),
    Mode.FINANCIAL_TUTOR: (
        "certificação",
        "ancord",
        "cea",
        "cfp",
        "cpa-10",
        "cpa-20",
        "cvm",
        "renda fixa",
        "renda variável",
        "derivativos",
        "fundos",
        "ações",
        "simulado",
        "prova",
        "exame",
    ),
}

HANDOFF_CONFIDENCE = 0.95
MARKETING_CONFIDENCE = 0.7
DEFAULT_CONFIDENCE = 0.5
SALES_MIN_HITS = 2


@dataclass(frozen=True)
class Classification:
    mode: Mode
    confidence: float


def _hits(text: str, keywords: Iterable[str]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


def classify(message: str | None) -> Classification:
    """Return the mode and confidence for ``message``.

    Handoff requests short-circuit everything else. Sales needs at least two
    keyword hits because price-adjacent words show up in plain support
    questions too. Anything unmatched falls back to support.
    """

    text = (message or "").lower()

    if _hits(text, MODE_KEYWORDS[Mode.HANDOFF_HUMAN]):
        return Classification(Mode.HANDOFF_HUMAN, HANDOFF_CONFIDENCE)

    sales = _hits(text, MODE_KEYWORDS[Mode.SALES])
    if sales >= SALES_MIN_HITS:
        return Classification(Mode.SALES, round(min(0.9, 0.6 + sales * 0.1), 2))

    support = _hits(text, MODE_KEYWORDS[Mode.SUPPORT])
    if support >= 1:
        return Classification(Mode.SUPPORT, round(min(0.85, 0.5 + support * 0.15), 2))

    tutor = _hits(text, MODE_KEYWORDS[Mode.FINANCIAL_TUTOR])
    if tutor >= 1:
        return Classification(Mode.FINANCIAL_TUTOR, round(min(0.95, 0.7 + tutor * 0.1), 2))

    if _hits(text, MODE_KEYWORDS[Mode.MARKETING]):
        return Classification(Mode.MARKETING, MARKETING_CONFIDENCE)

    return Classification(Mode.SUPPORT, DEFAULT_CONFIDENCE)


__all__ = ["Classification", "MODE_KEYWORDS", "Mode", "classify"]
