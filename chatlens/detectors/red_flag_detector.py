"""
chatlens/detectors/red_flag_detector.py
Rule-based red-flag detection — pure Python, no I/O, no external calls.

Serves as a backstop for the upstream AI analysis: scans the transcript
line by line, matches each utterance against the pattern catalogue and
runs every raw match through the suppression pipeline. At most one flag
per category per call; the first surviving match claims it.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from chatlens.detectors.patterns import PATTERN_RULES, PatternRule
from chatlens.detectors.suppression import (
    SUPPRESSION_STAGES,
    RuleMatch,
    SuppressionStage,
    find_suppression,
)
from chatlens.models.record import FlagExample, RedFlag
from chatlens.parsers.transcript_parser import build_context

logger = logging.getLogger(__name__)

HEALTH_BYPASS_THRESHOLD = 85


@dataclass(frozen=True)
class DetectorSettings:
    health_bypass_threshold:            int  = HEALTH_BYPASS_THRESHOLD
    exempt_critical_from_health_bypass: bool = False


DEFAULT_SETTINGS = DetectorSettings()


def detect_red_flags(
    conversation:         Optional[str],
    health_score:         Optional[float]               = None,
    settings:             DetectorSettings              = DEFAULT_SETTINGS,
    healthy_conversation: bool                          = False,
    rules:                Tuple[PatternRule, ...]       = PATTERN_RULES,
    stages:               Tuple[SuppressionStage, ...]  = SUPPRESSION_STAGES,
) -> List[RedFlag]:
    """
    Detect red flags directly from transcript text.

    health_score at/above settings.health_bypass_threshold returns [],
    unless settings.exempt_critical_from_health_bypass is set, in which
    case only critical-safety categories are evaluated.

    healthy_conversation is an upstream judgement; when True every
    non-critical match is dropped.
    """
    if not conversation:
        return []

    only_critical = False
    if health_score is not None and health_score >= settings.health_bypass_threshold:
        if not settings.exempt_critical_from_health_bypass:
            logger.info(
                f"Skipping red flag detection for healthy conversation "
                f"(health score: {health_score})"
            )
            return []
        only_critical = True

    ctx = build_context(conversation, healthy_conversation=healthy_conversation)

    flags: List[RedFlag] = []
    found: Set[str]      = set()

    for utt in ctx.utterances:
        for rule in rules:
            if rule.type in found:
                continue
            if only_critical and not rule.is_critical:
                continue
            if not rule.pattern.search(utt.text):
                continue

            match = RuleMatch(rule=rule, utterance=utt)
            stage = find_suppression(match, ctx, stages)
            if stage:
                logger.debug(f"{rule.type} suppressed by {stage} (speaker={utt.speaker})")
                continue

            found.add(rule.type)
            flags.append(RedFlag(
                type        = rule.type,
                description = rule.description,
                severity    = rule.severity,
                examples    = [FlagExample(text=utt.text, from_=utt.speaker)],
                participant = utt.speaker,
            ))

    logger.info(
        f"Direct detection: {len(flags)} red flag(s) across "
        f"{len(ctx.utterances)} utterance(s)"
    )
    return flags


def red_flag_to_dict(flag: RedFlag) -> Dict[str, Any]:
    return {
        'type':        flag.type,
        'description': flag.description,
        'severity':    flag.severity,
        'examples':    [{'text': e.text, 'from': e.from_} for e in flag.examples],
        'participant': flag.participant,
    }


def merge_red_flags(
    existing: List[Dict[str, Any]],
    detected: List[RedFlag],
) -> List[Dict[str, Any]]:
    """Append detected flags whose type is not already present. Existing order kept."""
    merged = list(existing)
    types  = {f.get('type') for f in merged}
    for flag in detected:
        if flag.type in types:
            continue
        merged.append(red_flag_to_dict(flag))
        types.add(flag.type)
    return merged


def enhance_with_direct_red_flags(
    analysis:     Dict[str, Any],
    conversation: str,
    health_score: Optional[float]   = None,
    settings:     DetectorSettings  = DEFAULT_SETTINGS,
) -> Dict[str, Any]:
    """
    Return a copy of an upstream analysis dict with directly detected
    flags merged into 'redFlags'. The input dict is not mutated.
    """
    enhanced = copy.deepcopy(analysis)
    detected = detect_red_flags(conversation, health_score, settings=settings)

    if detected:
        enhanced['redFlags']         = merge_red_flags(enhanced.get('redFlags') or [], detected)
        enhanced['redFlagsCount']    = len(enhanced['redFlags'])
        enhanced['redFlagsDetected'] = True

    return enhanced
