"""
chatlens/detectors/suppression.py
Context rules that veto a raw pattern match before it becomes a red flag.

A match runs through SUPPRESSION_STAGES in order; the first stage whose
predicate returns True suppresses it and its name is reported for
debug logging. Category stages only consult the rule types they name.

Each predicate takes (match, ctx) and is testable on its own.
"""

from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional, Tuple

from chatlens.detectors.patterns import (
    APPRECIATION_MARKERS,
    BLAME_AVOIDANT_MARKERS,
    CANCELLATION_SENSITIVE_CATEGORIES,
    CONDITIONAL_LEVERAGE_MARKERS,
    CONTINUED_ENGAGEMENT_MARKERS,
    DISENGAGEMENT_MARKERS,
    DISMISSIVE_MARKERS,
    EVASIVE_REPLY,
    EVASIVE_WORDS,
    FRUSTRATION_MARKERS,
    LEVERAGE_MARKERS,
    MANIPULATIVE_FRAMING_MARKERS,
    MINIMIZING_MARKERS,
    NEUTRAL_AWARENESS_MARKERS,
    PROTECTIVE_CATEGORIES,
    PROTECTIVE_REPORT_MARKERS,
    PatternRule,
    REASSURANCE_MARKERS,
    RECONCILIATION_MARKERS,
    SUPPORTIVE_ALLOW_LIST,
    SUPPORTIVE_REPLY_MARKERS,
    UNDER_RESPONSIVE_MAX_REPLIES,
    WILLINGNESS_MARKERS,
    contains_any,
)
from chatlens.models.record import Utterance
from chatlens.parsers.transcript_parser import TranscriptContext


@dataclass(frozen=True)
class RuleMatch:
    rule:      PatternRule
    utterance: Utterance

    @property
    def lowered(self) -> str:
        return self.utterance.text.lower()


@dataclass(frozen=True)
class SuppressionStage:
    name:       str
    predicate:  Callable[[RuleMatch, TranscriptContext], bool]
    categories: Optional[FrozenSet[str]] = None   # None = every category

    def suppresses(self, match: RuleMatch, ctx: TranscriptContext) -> bool:
        if self.categories is not None and match.rule.type not in self.categories:
            return False
        return self.predicate(match, ctx)


# ── GLOBAL STAGES ────────────────────────────────────────────

def healthy_conversation(match: RuleMatch, ctx: TranscriptContext) -> bool:
    return ctx.healthy_conversation and not match.rule.is_critical


def clearly_supportive(match: RuleMatch, ctx: TranscriptContext) -> bool:
    return contains_any(match.lowered, SUPPORTIVE_ALLOW_LIST)


# ── CATEGORY STAGES ──────────────────────────────────────────

def nuanced_speaker(match: RuleMatch, ctx: TranscriptContext) -> bool:
    """All-or-Nothing: the speaker hedges elsewhere, so absolutes are rhetorical."""
    return match.utterance.speaker in ctx.nuanced_speakers


def continued_engagement(match: RuleMatch, ctx: TranscriptContext) -> bool:
    """Withdrawal is disproved by any later message from the same speaker."""
    utt = match.utterance
    return ctx.speaks_after(utt.speaker, utt.index)


def frustration_without_disengagement(match: RuleMatch, ctx: TranscriptContext) -> bool:
    text = match.lowered
    return (
        contains_any(text, FRUSTRATION_MARKERS)
        and not contains_any(text, DISENGAGEMENT_MARKERS)
    )


def engagement_markers(match: RuleMatch, ctx: TranscriptContext) -> bool:
    return contains_any(match.lowered, CONTINUED_ENGAGEMENT_MARKERS)


def reassurance_without_leverage(match: RuleMatch, ctx: TranscriptContext) -> bool:
    """'I care about you' on its own is never manipulation."""
    text = match.lowered
    return (
        contains_any(text, REASSURANCE_MARKERS)
        and not contains_any(text, LEVERAGE_MARKERS)
    )


def reconciliation_attempt(match: RuleMatch, ctx: TranscriptContext) -> bool:
    text = match.lowered
    return (
        contains_any(text, RECONCILIATION_MARKERS)
        and not contains_any(text, CONDITIONAL_LEVERAGE_MARKERS)
    )


def supportive_reply(match: RuleMatch, ctx: TranscriptContext) -> bool:
    return contains_any(match.lowered, SUPPORTIVE_REPLY_MARKERS)


def reciprocated_appreciation(match: RuleMatch, ctx: TranscriptContext) -> bool:
    """Genuine appreciation, and someone else answers warmly too."""
    text = match.lowered
    if not contains_any(text, APPRECIATION_MARKERS):
        return False
    if contains_any(text, MANIPULATIVE_FRAMING_MARKERS):
        return False
    return bool(ctx.positive_speakers - {match.utterance.speaker})


def resolved_cancellation(match: RuleMatch, ctx: TranscriptContext) -> bool:
    """Resentment over a missed plan that was already apologised for / rescheduled."""
    return (
        ctx.cancellation_resolved
        and match.utterance.speaker in ctx.cancellation_speakers
    )


def protective_report(match: RuleMatch, ctx: TranscriptContext) -> bool:
    """
    Factual report (police involvement, a child's medical needs) made
    while the other side is evasive or barely replying.
    """
    if not contains_any(match.lowered, PROTECTIVE_REPORT_MARKERS):
        return False
    return other_party_evasive(match.utterance.speaker, ctx)


def neutral_awareness(match: RuleMatch, ctx: TranscriptContext) -> bool:
    """'I didn't realize' without a dismissive, blame-avoidant or minimising clause."""
    text = match.lowered
    if not contains_any(text, NEUTRAL_AWARENESS_MARKERS):
        return False
    return not (
        contains_any(text, DISMISSIVE_MARKERS)
        or contains_any(text, BLAME_AVOIDANT_MARKERS)
        or contains_any(text, MINIMIZING_MARKERS)
    )


def willingness_to_improve(match: RuleMatch, ctx: TranscriptContext) -> bool:
    return contains_any(match.lowered, WILLINGNESS_MARKERS)


def other_party_evasive(speaker: str, ctx: TranscriptContext) -> bool:
    reply_count = sum(n for s, n in ctx.message_counts.items() if s != speaker)
    if reply_count <= UNDER_RESPONSIVE_MAX_REPLIES:
        return True
    replies = ctx.others(speaker)
    evasive = sum(1 for r in replies if _is_evasive_reply(r.text))
    return evasive * 2 >= len(replies)


def _is_evasive_reply(text: str) -> bool:
    if EVASIVE_REPLY.match(text):
        return True
    words = text.lower().split()
    return len(words) <= 4 and contains_any(' '.join(words), EVASIVE_WORDS)


def _only(*categories: str) -> FrozenSet[str]:
    return frozenset(categories)


# ── PIPELINE ─────────────────────────────────────────────────

SUPPRESSION_STAGES: Tuple[SuppressionStage, ...] = (
    SuppressionStage('healthy-conversation', healthy_conversation),
    SuppressionStage('clearly-supportive',   clearly_supportive),

    SuppressionStage('nuanced-speaker',      nuanced_speaker,
                     _only('All-or-Nothing Thinking')),

    SuppressionStage('continued-engagement', continued_engagement,
                     _only('Emotional Withdrawal')),
    SuppressionStage('frustration-only',     frustration_without_disengagement,
                     _only('Emotional Withdrawal')),
    SuppressionStage('engagement-markers',   engagement_markers,
                     _only('Emotional Withdrawal')),

    SuppressionStage('reassurance',          reassurance_without_leverage,
                     _only('Emotional Manipulation')),
    SuppressionStage('reconciliation',       reconciliation_attempt,
                     _only('Emotional Manipulation')),

    SuppressionStage('supportive-reply',     supportive_reply,
                     _only('Guilt Tripping')),
    SuppressionStage('reciprocated-appreciation', reciprocated_appreciation,
                     _only('Guilt Tripping')),
    SuppressionStage('resolved-cancellation', resolved_cancellation,
                     CANCELLATION_SENSITIVE_CATEGORIES),

    SuppressionStage('protective-report',    protective_report,
                     PROTECTIVE_CATEGORIES),

    SuppressionStage('neutral-awareness',    neutral_awareness,
                     _only('Passivity')),
    SuppressionStage('willingness-to-improve', willingness_to_improve,
                     _only('Passivity')),
)


def find_suppression(
    match:  RuleMatch,
    ctx:    TranscriptContext,
    stages: Tuple[SuppressionStage, ...] = SUPPRESSION_STAGES,
) -> Optional[str]:
    """Name of the first stage that suppresses the match, or None."""
    for stage in stages:
        if stage.suppresses(match, ctx):
            return stage.name
    return None
