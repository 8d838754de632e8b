"""
chatlens/dynamics/conflict_dynamics.py
Conflict-dynamics scoring over upstream key quotes.

Each participant starts neutral (50). Every attributed quote moves the
speaker's score by weighted counts of escalation, de-escalation and
reality-distortion language; the score is clamped to [0, 100] and maps
to a tendency:

    score < 40   → escalates
    score > 65   → de-escalates
    otherwise    → mixed

Two-person exchanges then pass through signature fingerprints and the
mutual-escalation heuristic before the summary is written. Detail
(examples, interaction, recommendations) is gated by tier.

NOTE: weights and thresholds are heuristics, not a validated instrument.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from chatlens.dynamics import lexicon as lx
from chatlens.dynamics.fingerprints import (
    DEFAULT_FINGERPRINTS,
    SignatureFingerprint,
    match_fingerprint,
)
from chatlens.models.record import ConflictDynamicsResult, KeyQuote, ParticipantDynamics
from chatlens.tiers import example_limit, has_full_recommendations, has_interaction

logger = logging.getLogger(__name__)

ESCALATES    = 'escalates'
DE_ESCALATES = 'de-escalates'
MIXED        = 'mixed'


def analyze_conflict_dynamics(
    key_quotes,
    participant_names: Optional[List[str]],
    tier:              str,
    fingerprints:      Tuple[SignatureFingerprint, ...] = DEFAULT_FINGERPRINTS,
) -> Optional[ConflictDynamicsResult]:
    """
    Score participants from key quotes.

    key_quotes: KeyQuote objects or dicts with speaker / quote / analysis.
    Returns None when there are no quotes or no participants.
    Quotes from speakers not in participant_names are ignored.
    """
    quotes = coerce_quotes(key_quotes)
    if not quotes or not participant_names:
        return None

    names = list(dict.fromkeys(participant_names))
    participants: Dict[str, ParticipantDynamics] = {
        name: ParticipantDynamics(score=lx.NEUTRAL_SCORE) for name in names
    }
    distortion_examples: Dict[str, List[str]] = {name: [] for name in names}
    other_examples:      Dict[str, List[str]] = {name: [] for name in names}

    # ── PER-QUOTE SCORING ────────────────────────────────────
    for q in quotes:
        p = participants.get(q.speaker)
        if p is None:
            continue

        escalation, de_escalation, distortion = score_quote(q)
        if not (escalation or de_escalation or distortion):
            continue

        p.score = _clamp(
            p.score
            + de_escalation * lx.DE_ESCALATION_WEIGHT
            - escalation    * lx.ESCALATION_WEIGHT
            - distortion    * lx.DISTORTION_WEIGHT
        )
        p.tendency    = tendency_for(p.score)
        p.description = _describe(p.tendency, escalation, de_escalation, distortion)

        if distortion:
            distortion_examples[q.speaker].append(q.quote)
        else:
            other_examples[q.speaker].append(q.quote)

    # ── TIER-GATED EXAMPLES ──────────────────────────────────
    limit = example_limit(tier)
    for name, p in participants.items():
        ordered = list(dict.fromkeys(distortion_examples[name] + other_examples[name]))
        p.examples = ordered[:limit]

    # ── TWO-PERSON OVERRIDES ─────────────────────────────────
    if len(names) == 2:
        combined = ' '.join(q.quote.lower() for q in quotes)
        fp = match_fingerprint(names, combined, fingerprints)
        if fp is not None:
            logger.info(f"Conflict dynamics: '{fp.name}' fingerprint matched")
            fp.outcome.apply(participants, names)
        else:
            _apply_mutual_escalation(participants, combined)

    # ── NARRATIVE ────────────────────────────────────────────
    escalating, de_escalating, mixed = _partition(participants)
    imbalance = _severe_imbalance(names, participants)

    result = ConflictDynamicsResult(
        summary      = _summary(imbalance, escalating, de_escalating),
        participants = participants,
    )
    if has_interaction(tier):
        result.interaction = _interaction(names, participants, imbalance,
                                          escalating, de_escalating, mixed)
        recommendations = _recommendations(imbalance, escalating, de_escalating)
        result.recommendations = (
            recommendations if has_full_recommendations(tier) else recommendations[:1]
        )
    return result


def score_quote(quote: KeyQuote) -> Tuple[int, int, int]:
    """(escalation, de_escalation, distortion) counts for one quote."""
    text     = quote.quote.lower()
    analysis = quote.analysis.lower()

    escalation    = sum(1 for i in lx.ESCALATION_INDICATORS if i in text or i in analysis)
    de_escalation = sum(1 for i in lx.DE_ESCALATION_INDICATORS if i in text or i in analysis)
    distortion    = sum(1 for p in lx.REALITY_DISTORTION_PHRASES if p in text)

    escalation += distortion * lx.DISTORTION_ESCALATION_BONUS
    return escalation, de_escalation, distortion


def tendency_for(score: int) -> str:
    if score < lx.ESCALATES_BELOW:
        return ESCALATES
    if score > lx.DE_ESCALATES_ABOVE:
        return DE_ESCALATES
    return MIXED


def coerce_quotes(key_quotes) -> List[KeyQuote]:
    """Accept KeyQuote objects or dicts; drop anything without a speaker."""
    quotes: List[KeyQuote] = []
    for q in key_quotes or []:
        if isinstance(q, KeyQuote):
            quotes.append(q)
            continue
        if not isinstance(q, dict) or not q.get('speaker'):
            continue
        quotes.append(KeyQuote(
            speaker  = str(q['speaker']),
            quote    = str(q.get('quote') or ''),
            analysis = str(q.get('analysis') or ''),
        ))
    return quotes


def participant_names_from(analysis: Dict[str, Any]) -> List[str]:
    """Participant names from toneAnalysis.participantTones keys."""
    tone = analysis.get('toneAnalysis') or {}
    return list((tone.get('participantTones') or {}).keys())


def conflict_dynamics_to_dict(result: ConflictDynamicsResult) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        'summary':      result.summary,
        'participants': {
            name: {
                'tendency':    p.tendency,
                'examples':    list(p.examples),
                'score':       p.score,
                'description': p.description,
            }
            for name, p in result.participants.items()
        },
    }
    if result.interaction is not None:
        out['interaction'] = result.interaction
    if result.recommendations is not None:
        out['recommendations'] = list(result.recommendations)
    return out


def enhance_with_conflict_dynamics(analysis: Dict[str, Any], tier: str) -> Dict[str, Any]:
    """Attach 'conflictDynamics' to an upstream analysis dict when it can be computed."""
    result = analyze_conflict_dynamics(
        analysis.get('keyQuotes') or [],
        participant_names_from(analysis),
        tier,
    )
    if result is None:
        return analysis
    return {**analysis, 'conflictDynamics': conflict_dynamics_to_dict(result)}


# ── HELPERS ──────────────────────────────────────────────────

def _clamp(score: int) -> int:
    return max(lx.MIN_SCORE, min(lx.MAX_SCORE, int(score)))


def _describe(tendency: str, escalation: int, de_escalation: int, distortion: int) -> str:
    if tendency == ESCALATES:
        if distortion > 2:
            return "Distorts facts and dismisses partner's feelings"
        if escalation > 5:
            return 'Uses hostile language and increases conflict intensity'
        return 'Introduces blame and negative framing to the conversation'
    if tendency == DE_ESCALATES:
        if de_escalation > 5:
            return 'Actively validates feelings and offers solutions'
        return "Maintains calm tone and acknowledges partner's perspective"
    return 'Shows both escalating and calming behaviors in different moments'


def _apply_mutual_escalation(
    participants: Dict[str, ParticipantDynamics],
    combined:     str,
) -> None:
    phrase_count    = sum(1 for p in lx.MUTUAL_ESCALATION_PHRASES if p in combined)
    has_exclamation = combined.count('!') >= lx.MIN_EXCLAMATIONS
    all_low         = all(p.score < lx.MUTUAL_LOW_SCORE for p in participants.values())

    mutual = (
        (phrase_count >= lx.MUTUAL_PHRASES_WITH_EXCLAMATIONS and has_exclamation)
        or phrase_count >= lx.MUTUAL_PHRASES_ALONE
    )
    if not (mutual or all_low):
        return

    logger.info(
        f"Mutual escalation detected: phrases={phrase_count}, "
        f"exclamations={has_exclamation}, low_scores={all_low}"
    )
    for p in participants.values():
        p.tendency    = ESCALATES
        p.score       = min(p.score, lx.MUTUAL_SCORE_CAP)
        p.description = 'Uses exaggerated language and contributes to increasing tension'


def _partition(
    participants: Dict[str, ParticipantDynamics],
) -> Tuple[List[str], List[str], List[str]]:
    escalating    = [n for n, p in participants.items() if p.tendency == ESCALATES]
    de_escalating = [n for n, p in participants.items() if p.tendency == DE_ESCALATES]
    mixed         = [n for n, p in participants.items() if p.tendency == MIXED]
    return escalating, de_escalating, mixed


def _severe_imbalance(
    names:        List[str],
    participants: Dict[str, ParticipantDynamics],
) -> Optional[Tuple[str, str]]:
    """(primary escalator, primary de-escalator) when two scores differ by > 30."""
    if len(names) != 2:
        return None
    a, b = names
    if abs(participants[a].score - participants[b].score) <= lx.IMBALANCE_GAP:
        return None
    if participants[a].score < participants[b].score:
        return a, b
    return b, a


def _join(names: Iterable[str]) -> str:
    return ' and '.join(names)


def _summary(
    imbalance:     Optional[Tuple[str, str]],
    escalating:    List[str],
    de_escalating: List[str],
) -> str:
    if imbalance:
        escalator, de_escalator = imbalance
        return (
            f"{escalator} is the primary source of conflict escalation, while "
            f"{de_escalator} attempts to maintain constructive communication."
        )
    if escalating and de_escalating:
        return (
            f"{_join(escalating)} tend(s) to escalate conflict, while "
            f"{_join(de_escalating)} tend(s) to de-escalate."
        )
    if escalating:
        return 'All participants tend to escalate conflicts.'
    if de_escalating:
        return 'All participants show de-escalating communication patterns.'
    return 'The conversation shows mixed conflict patterns.'


def _interaction(
    names:         List[str],
    participants:  Dict[str, ParticipantDynamics],
    imbalance:     Optional[Tuple[str, str]],
    escalating:    List[str],
    de_escalating: List[str],
    mixed:         List[str],
) -> str:
    scores = [p.score for p in participants.values()]

    if len(names) == 2:
        if imbalance:
            escalator, de_escalator = imbalance
            return (
                f"This conversation shows a clearly imbalanced dynamic where {escalator} "
                f"consistently escalates conflict, while {de_escalator} attempts to "
                f"maintain reasonable communication."
            )
        if escalating and de_escalating:
            return (
                f"This conversation shows an imbalanced conflict dynamic where "
                f"{_join(escalating)} tend(s) to escalate while {_join(de_escalating)} "
                f"attempt(s) to calm the situation."
            )
        if len(escalating) > 1:
            return ('This conversation shows a mutually escalating pattern that may '
                    'intensify conflicts over time.')
        if len(de_escalating) > 1:
            return ('This conversation shows a healthy conflict resolution pattern where '
                    'both participants work to maintain calm communication.')
        if all(s < lx.MUTUAL_LOW_SCORE for s in scores):
            return ('This conversation shows a clear pattern of mutual escalation where both '
                    'participants contribute equally to intensifying the conflict.')
        if all(s > lx.HEALTHY_MUTUAL_SCORE for s in scores):
            return ('This conversation shows a healthy pattern of mutual respect and '
                    'de-escalation where both participants contribute to resolving '
                    'conflicts constructively.')
        return ('This conversation shows inconsistent conflict management patterns with '
                'mixed contributions from participants.')

    if escalating and de_escalating:
        return (
            f"This conversation shows an imbalanced conflict dynamic where "
            f"{_join(escalating)} escalate(s) while {_join(de_escalating)} "
            f"attempt(s) to calm the situation."
        )
    if len(escalating) > 1:
        return ('This conversation shows a mutually escalating pattern that may '
                'intensify conflicts over time.')
    if len(de_escalating) > 1:
        return ('This conversation shows a healthy conflict resolution pattern where '
                'participants work to maintain calm communication.')
    return 'This conversation shows inconsistent conflict management patterns.'


def _recommendations(
    imbalance:     Optional[Tuple[str, str]],
    escalating:    List[str],
    de_escalating: List[str],
) -> List[str]:
    recs: List[str] = []
    if escalating:
        recs.append(
            f"{_join(escalating)} could benefit from practicing active listening and "
            f"acknowledging the other person's perspective before responding."
        )
    if de_escalating:
        recs.append(
            f"{_join(de_escalating)} show(s) healthy de-escalation patterns that "
            f"should be maintained."
        )
    if escalating and de_escalating:
        recs.append('Consider establishing communication ground rules to prevent '
                    'escalation cycles.')
    if imbalance:
        escalator, de_escalator = imbalance
        recs.append(
            f"{escalator} could work on noticing when criticism turns into blame; "
            f"{de_escalator} may need to set clear boundaries if the pattern continues."
        )
    elif len(escalating) > 1 and not de_escalating:
        recs.append('Agree on a pause signal so either person can step away when a '
                    'discussion becomes heated and return to it once calm.')
    elif len(de_escalating) > 1 and not escalating:
        recs.append('Keep naming feelings and checking understanding; these habits are '
                    'what keep disagreements constructive.')
    return recs
