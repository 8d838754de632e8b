"""
chatlens/detectors/evasion_detector.py
Evasion patterns in key quotes: topic shifting, question dodging,
non-committal answers, deflection, avoidance, refusal to engage.

Works on the upstream analysis text attached to each quote, not on the
quote itself. Personal tier gets pattern labels only; pro / instant get
per-bucket instances with the quote as example.
"""

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from chatlens.detectors.patterns import contains_any
from chatlens.dynamics.conflict_dynamics import coerce_quotes, participant_names_from
from chatlens.models.record import EvasionInstance
from chatlens.tiers import has_detailed_evasion, has_evasion, normalize_tier

logger = logging.getLogger(__name__)

BASIC_EVASION_KEYWORDS = (
    'avoid', 'deflect', 'dodge', 'shift', 'divert', 'ignore', 'vague', 'non-committal',
)

# bucket → (indicator keywords, instance type, context sentence)
EVASION_BUCKETS: Dict[str, tuple] = {
    'topicShifting': (
        ('change subject', 'different topic', 'shift', 'unrelated', 'tangent'),
        'Topic Shifting',
        'Changed the subject instead of addressing the previous point',
    ),
    'questionDodging': (
        ('dodge', 'avoid question', 'not answer', 'redirect question'),
        'Question Dodging',
        'Failed to provide a direct answer to a question',
    ),
    'nonCommittal': (
        ('vague', 'ambiguous', 'unclear', 'non-committal', 'maybe', 'perhaps'),
        'Non-committal Response',
        'Used vague language to avoid taking a clear position',
    ),
    'deflection': (
        ('deflect', 'counter-question', 'blame', 'defensive', 'accusatory'),
        'Deflection',
        'Redirected attention away from the issue',
    ),
    'avoidance': (
        ('avoid', 'ignore', 'silent', 'withdraw', 'distance'),
        'Avoidance',
        'Actively avoided addressing the topic',
    ),
    'refusalToEngage': (
        ('refuse', "won't discuss", 'shut down', 'disengage', 'not talk about'),
        'Refusal to Engage',
        'Explicitly refused to participate in meaningful dialogue',
    ),
}


def detect_basic_evasion(key_quotes) -> Dict[str, Any]:
    quotes = coerce_quotes(key_quotes)
    if not quotes:
        return {'hasEvasion': False}

    by_speaker: Dict[str, List[str]] = {}
    for q in quotes:
        analysis = q.analysis.lower()
        if not contains_any(analysis, BASIC_EVASION_KEYWORDS):
            continue

        if 'deflect' in analysis or 'divert' in analysis:
            label = 'deflection'
        elif 'vague' in analysis or 'non-committal' in analysis:
            label = 'refusal to engage in meaningful dialogue'
        else:
            label = 'avoidance'

        labels = by_speaker.setdefault(q.speaker, [])
        if label not in labels:
            labels.append(label)

    patterns = [
        f"{label} ({speaker})"
        for speaker, labels in by_speaker.items()
        for label in labels
    ]
    return {'hasEvasion': bool(patterns), 'evasionPatterns': patterns}


def detect_detailed_evasion(
    key_quotes,
    participant_names: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Quotes from speakers outside participant_names (when given) are skipped."""
    quotes = coerce_quotes(key_quotes)
    if participant_names:
        known  = set(participant_names)
        quotes = [q for q in quotes if q.speaker in known]
    if not quotes:
        return {'hasEvasion': False}

    details: Dict[str, List[EvasionInstance]] = {bucket: [] for bucket in EVASION_BUCKETS}
    for q in quotes:
        analysis = q.analysis.lower()
        for bucket, (keywords, label, context) in EVASION_BUCKETS.items():
            if contains_any(analysis, keywords):
                details[bucket].append(EvasionInstance(
                    type        = label,
                    participant = q.speaker,
                    example     = q.quote,
                    context     = context,
                ))

    has = any(details.values())
    if has:
        logger.debug(
            "Evasion buckets hit: "
            + ", ".join(b for b, found in details.items() if found)
        )
    return {
        'hasEvasion':     has,
        'evasionDetails': {
            bucket: [asdict(i) for i in instances]
            for bucket, instances in details.items()
        },
    }


def enhance_with_evasion_detection(analysis: Dict[str, Any], tier: str) -> Dict[str, Any]:
    """Free tier (and unknown tiers) are returned untouched."""
    tier = normalize_tier(tier)
    if not has_evasion(tier):
        return analysis

    quotes = analysis.get('keyQuotes') or []

    if has_detailed_evasion(tier):
        detailed = detect_detailed_evasion(quotes, participant_names_from(analysis))
        if detailed['hasEvasion']:
            return {
                **analysis,
                'evasionDetection': {
                    'detected':      True,
                    'analysisTitle': 'Avoidance Detection Activated',
                    'details':       detailed['evasionDetails'],
                },
            }
    else:
        basic = detect_basic_evasion(quotes)
        if basic['hasEvasion']:
            return {
                **analysis,
                'evasionDetection': {
                    'detected': True,
                    'patterns': basic['evasionPatterns'],
                },
            }

    return {**analysis, 'evasionDetection': {'detected': False}}
