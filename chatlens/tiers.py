"""
chatlens/tiers.py
Subscription tier policy for analysis detail.

  free      — no examples, no interaction narrative, no evasion detection
  personal  — 1 example per participant, interaction, one recommendation,
              basic evasion patterns
  pro       — 3 examples, interaction, full recommendations, detailed evasion
  instant   — same as pro

Unknown tiers get free-tier behaviour; they never raise.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

FREE     = 'free'
PERSONAL = 'personal'
PRO      = 'pro'
INSTANT  = 'instant'

KNOWN_TIERS = (FREE, PERSONAL, PRO, INSTANT)

# Beta accounts are served the pro feature set.
TIER_ALIASES = {'beta': PRO}

EXAMPLE_LIMITS = {
    FREE:     0,
    PERSONAL: 1,
    PRO:      3,
    INSTANT:  3,
}


def normalize_tier(tier: Optional[str]) -> str:
    if not tier:
        return FREE
    key = str(tier).strip().lower()
    key = TIER_ALIASES.get(key, key)
    if key not in KNOWN_TIERS:
        logger.debug(f"Unknown tier {tier!r}, using {FREE}")
        return FREE
    return key


def example_limit(tier: str) -> int:
    return EXAMPLE_LIMITS.get(normalize_tier(tier), 0)


def has_interaction(tier: str) -> bool:
    return normalize_tier(tier) in (PERSONAL, PRO, INSTANT)


def has_full_recommendations(tier: str) -> bool:
    return normalize_tier(tier) in (PRO, INSTANT)


def has_evasion(tier: str) -> bool:
    return normalize_tier(tier) in (PERSONAL, PRO, INSTANT)


def has_detailed_evasion(tier: str) -> bool:
    return normalize_tier(tier) in (PRO, INSTANT)
