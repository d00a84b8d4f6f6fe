from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum

from clarity.core.config import settings


class TierId(str, Enum):
    FREE = "free"
    STANDARD = "standard"
    PRO = "pro"


class StyleId(str, Enum):
    PROFESSIONAL = "professional"
    DIRECT = "direct"
    EMAIL = "email"
    FRIENDLY = "friendly"
    FORMAL = "formal"
    CASUAL = "casual"
    PERSUASIVE = "persuasive"
    CONCISE = "concise"


# Upgrade order, cheapest first.
TIER_ORDER: tuple[TierId, ...] = (TierId.FREE, TierId.STANDARD, TierId.PRO)


@dataclass(frozen=True, slots=True)
class TierDefinition:
    id: TierId
    daily_quota: int
    allowed_styles: frozenset[StyleId]

    def allows(self, style: StyleId | None) -> bool:
        return style is not None and style in self.allowed_styles


def parse_tier(value: str | None) -> TierId | None:
    normalized = (value or "").strip().lower()
    try:
        return TierId(normalized)
    except ValueError:
        return None


def parse_style(value: str | None) -> StyleId | None:
    normalized = (value or "").strip().lower()
    try:
        return StyleId(normalized)
    except ValueError:
        return None


class TierCatalog(Mapping[TierId, TierDefinition]):
    """Static tier-to-entitlement table.

    Lookups never fail: anything that is not a known tier identifier resolves
    to the free tier.
    """

    def __init__(self, definitions: list[TierDefinition]) -> None:
        self._definitions = {definition.id: definition for definition in definitions}
        if TierId.FREE not in self._definitions:
            raise ValueError("Tier catalog must define the free tier")

    def __getitem__(self, tier: TierId) -> TierDefinition:
        return self._definitions[tier]

    def __iter__(self) -> Iterator[TierId]:
        return (tier for tier in TIER_ORDER if tier in self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def resolve(self, tier: TierId | str | None) -> TierDefinition:
        tier_id = tier if isinstance(tier, TierId) else parse_tier(tier)
        if tier_id is None or tier_id not in self._definitions:
            return self._definitions[TierId.FREE]
        return self._definitions[tier_id]

    def next_tier(self, tier: TierId) -> TierDefinition | None:
        ordered = list(self)
        position = ordered.index(tier)
        if position + 1 >= len(ordered):
            return None
        return self._definitions[ordered[position + 1]]

    def tiers_allowing(self, style: StyleId | None) -> tuple[TierId, ...]:
        return tuple(tier for tier in self if self._definitions[tier].allows(style))


def build_default_catalog() -> TierCatalog:
    free_styles = frozenset({StyleId.PROFESSIONAL, StyleId.DIRECT, StyleId.EMAIL})
    standard_styles = free_styles | {StyleId.FRIENDLY, StyleId.FORMAL, StyleId.CASUAL}
    pro_styles = standard_styles | {StyleId.PERSUASIVE, StyleId.CONCISE}
    return TierCatalog(
        [
            TierDefinition(TierId.FREE, settings.free_daily_quota, free_styles),
            TierDefinition(TierId.STANDARD, settings.standard_daily_quota, standard_styles),
            TierDefinition(TierId.PRO, settings.pro_daily_quota, pro_styles),
        ]
    )


TIER_CATALOG = build_default_catalog()
