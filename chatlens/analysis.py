"""
chatlens/analysis.py
Enhancement pipeline for an upstream analysis result.

  health-score gate → direct red flags → conflict dynamics → evasion detection
    → red flag evidence (withdrawal checks, validated quote examples)

Each stage degrades on its own: a failure is logged and that section is
left out, the rest of the result is still returned.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from chatlens.detectors.evasion_detector import enhance_with_evasion_detection
from chatlens.detectors.patterns import CRITICAL_CATEGORIES, CRITICAL_SEVERITY
from chatlens.detectors.red_flag_enhancer import enhance_red_flags
from chatlens.detectors.red_flag_detector import (
    DEFAULT_SETTINGS,
    DetectorSettings,
    detect_red_flags,
    enhance_with_direct_red_flags,
    merge_red_flags,
)
from chatlens.dynamics.conflict_dynamics import (
    analyze_conflict_dynamics,
    conflict_dynamics_to_dict,
    participant_names_from,
)
from chatlens.parsers.transcript_parser import parse_transcript, participants
from chatlens.tiers import normalize_tier

logger = logging.getLogger(__name__)


def health_score_of(analysis: Dict[str, Any]) -> Optional[float]:
    """healthScore may be {'score': n} or a bare number. None when absent/invalid."""
    raw = analysis.get('healthScore')
    if isinstance(raw, dict):
        raw = raw.get('score')
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def enhance_analysis(
    analysis:     Dict[str, Any],
    conversation: str,
    tier:         Optional[str]     = None,
    settings:     DetectorSettings  = DEFAULT_SETTINGS,
) -> Dict[str, Any]:
    """
    Return an enhanced copy of `analysis`. The input dict is not mutated.
    """
    tier     = normalize_tier(tier)
    enhanced = copy.deepcopy(analysis or {})

    # ── RED FLAGS ────────────────────────────────────────────
    try:
        enhanced = _apply_red_flags(enhanced, conversation, settings)
    except Exception as e:
        logger.error(f"Red flag stage failed: {e}", exc_info=True)

    # ── CONFLICT DYNAMICS ────────────────────────────────────
    try:
        names = participant_names_from(enhanced) or participants(parse_transcript(conversation))
        result = analyze_conflict_dynamics(enhanced.get('keyQuotes') or [], names, tier)
        if result is not None:
            enhanced['conflictDynamics'] = conflict_dynamics_to_dict(result)
    except Exception as e:
        logger.error(f"Conflict dynamics stage failed: {e}", exc_info=True)

    # ── EVASION ──────────────────────────────────────────────
    try:
        enhanced = enhance_with_evasion_detection(enhanced, tier)
    except Exception as e:
        logger.error(f"Evasion detection stage failed: {e}", exc_info=True)

    # ── RED FLAG EVIDENCE ────────────────────────────────────
    try:
        enhanced = enhance_red_flags(enhanced, conversation, tier)
    except Exception as e:
        logger.error(f"Red flag enhancement stage failed: {e}", exc_info=True)

    return enhanced


def analyze_transcript(
    conversation:      str,
    key_quotes:        Optional[List[Dict[str, Any]]] = None,
    participant_names: Optional[List[str]]            = None,
    tier:              Optional[str]                  = None,
    health_score:      Optional[float]                = None,
    settings:          DetectorSettings               = DEFAULT_SETTINGS,
) -> Dict[str, Any]:
    """
    Run the pipeline without an upstream analysis: builds the minimal
    result shape (keyQuotes, toneAnalysis, healthScore) and enhances it.
    """
    analysis: Dict[str, Any] = {
        'redFlags':  [],
        'keyQuotes': list(key_quotes or []),
    }
    if participant_names:
        analysis['toneAnalysis'] = {
            'participantTones': {name: '' for name in participant_names},
        }
    if health_score is not None:
        analysis['healthScore'] = {'score': health_score}

    result = enhance_analysis(analysis, conversation, tier=tier, settings=settings)
    result.setdefault('redFlagsCount', len(result.get('redFlags') or []))
    result.setdefault('redFlagsDetected', bool(result.get('redFlags')))
    return result


def _apply_red_flags(
    analysis:     Dict[str, Any],
    conversation: str,
    settings:     DetectorSettings,
) -> Dict[str, Any]:
    score = health_score_of(analysis)

    if score is None or score < settings.health_bypass_threshold:
        return enhance_with_direct_red_flags(analysis, conversation, score, settings=settings)

    # Healthy conversation: upstream flags are dropped as well.
    upstream = analysis.get('redFlags') or []
    kept: List[Dict[str, Any]] = []
    if settings.exempt_critical_from_health_bypass:
        kept = [f for f in upstream if _is_critical_flag(f)]
        kept = merge_red_flags(kept, detect_red_flags(conversation, score, settings=settings))

    if upstream:
        logger.info(
            f"Health score {score} >= {settings.health_bypass_threshold}: "
            f"{len(upstream)} upstream red flag(s) cleared, {len(kept)} kept"
        )

    analysis['redFlags']         = kept
    analysis['redFlagsCount']    = len(kept)
    analysis['redFlagsDetected'] = bool(kept)
    return analysis


def _is_critical_flag(flag: Dict[str, Any]) -> bool:
    """Same rule as PatternRule.is_critical, applied to an upstream flag dict."""
    if flag.get('type') in CRITICAL_CATEGORIES:
        return True
    try:
        return int(flag.get('severity') or 0) >= CRITICAL_SEVERITY
    except (TypeError, ValueError):
        return False
