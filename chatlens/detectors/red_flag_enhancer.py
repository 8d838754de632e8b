"""
chatlens/detectors/red_flag_enhancer.py
Final pass over the merged red-flag list.

  1. Withdrawal / stonewalling flags must be backed by the transcript:
     a participant who keeps writing, explains themselves or ends on an
     open note is not withdrawing. Otherwise their last message has to
     close the conversation.
  2. Key quotes are used only when they actually occur in the transcript.
  3. Flags get tier-gated examples from the key quotes whose analysis
     names the flag type.
"""

import copy
import logging
from typing import Any, Dict, List

from chatlens.detectors.patterns import (
    EXPLAINING_MARKERS,
    OPENNESS_MARKERS,
    TERMINAL_MARKERS,
    WITHDRAWAL_FLAG_TERMS,
    WITHDRAWAL_MAX_MESSAGES,
    contains_any,
)
from chatlens.dynamics.conflict_dynamics import coerce_quotes, participant_names_from
from chatlens.models.record import KeyQuote
from chatlens.parsers.transcript_parser import TranscriptContext, build_context
from chatlens.tiers import INSTANT, PERSONAL, PRO, example_limit, normalize_tier

logger = logging.getLogger(__name__)

BOTH_PARTICIPANTS = 'Both participants'

# Partial quote match: the first words of a longer quote.
PARTIAL_QUOTE_WORDS    = 5
PARTIAL_QUOTE_MIN_LEN  = 10


def is_withdrawal_flag(flag: Dict[str, Any]) -> bool:
    text = f"{flag.get('type') or ''} {flag.get('description') or ''}".lower()
    return contains_any(text, WITHDRAWAL_FLAG_TERMS)


def withdrawal_blocker(flag: Dict[str, Any], ctx: TranscriptContext):
    """
    Name of the reason a withdrawal flag is not supported, or None.

    A flag with no participant, or naming someone who never speaks in
    the transcript, cannot be checked and is left alone.
    """
    participant = flag.get('participant') or flag.get('speaker')
    if not participant:
        return None

    messages = [u.text.lower() for u in ctx.utterances if u.speaker == participant]
    if not messages:
        return None

    if ctx.message_counts.get(participant, 0) >= WITHDRAWAL_MAX_MESSAGES:
        return 'still-responding'
    if any(contains_any(m, EXPLAINING_MARKERS) for m in messages):
        return 'explaining'

    last = messages[-1]
    if '?' in last or contains_any(last, OPENNESS_MARKERS):
        return 'open-ending'
    if not contains_any(last, TERMINAL_MARKERS):
        return 'no-terminal-message'
    return None


def filter_withdrawal_flags(flags: List[Dict[str, Any]], ctx: TranscriptContext) -> List[Dict[str, Any]]:
    kept: List[Dict[str, Any]] = []
    for flag in flags:
        if is_withdrawal_flag(flag):
            reason = withdrawal_blocker(flag, ctx)
            if reason:
                logger.debug(
                    f"Dropped {flag.get('type')!r} flag for "
                    f"{flag.get('participant') or flag.get('speaker')}: {reason}"
                )
                continue
        kept.append(flag)
    return kept


def quote_in_conversation(quote: str, conversation: str) -> bool:
    """
    True when the quote occurs in the transcript, case-insensitively.
    Longer quotes also count when their first five words occur, which
    tolerates small differences in the tail.
    """
    if not quote or not conversation:
        return False
    needle   = ' '.join(quote.lower().split())
    haystack = ' '.join(conversation.lower().split())
    if not needle:
        return False
    if needle in haystack:
        return True

    words = needle.split(' ')
    if len(words) <= 3:
        return False
    prefix = ' '.join(words[:PARTIAL_QUOTE_WORDS])
    return len(prefix) > PARTIAL_QUOTE_MIN_LEN and prefix in haystack


def validated_quotes(key_quotes, conversation: str) -> List[KeyQuote]:
    quotes = coerce_quotes(key_quotes)
    valid  = [q for q in quotes if quote_in_conversation(q.quote, conversation)]
    if len(valid) != len(quotes):
        logger.info(f"Quote validation: {len(quotes)} key quote(s), {len(valid)} found in transcript")
    return valid


def _attach_examples(flag: Dict[str, Any], quotes: List[KeyQuote], tier: str) -> None:
    flag_type = str(flag.get('type') or '').lower()
    if not flag_type:
        return
    relevant = [q for q in quotes if flag_type in q.analysis.lower()]
    if not relevant:
        return

    relevant = relevant[:example_limit(tier)]
    primary  = relevant[0]
    flag['examples'] = [{'text': q.quote, 'from': q.speaker} for q in relevant]
    flag['quote']    = primary.quote

    if tier == PERSONAL:
        flag['participant'] = primary.speaker
        return

    flag['speaker']           = primary.speaker
    flag['impact']            = (f'When {primary.speaker} says "{primary.quote}", it creates '
                                 f'tension and can damage trust in the relationship.')
    flag['recommendedAction'] = (f'Consider discussing how statements like "{primary.quote}" '
                                 f'affect you emotionally, using "I" statements to express your feelings.')
    flag['behavioralPattern'] = (f'This type of communication may indicate an underlying pattern of '
                                 f'{flag_type} behavior that could escalate if not addressed.')


def enhance_red_flags(analysis: Dict[str, Any], conversation: str, tier: str) -> Dict[str, Any]:
    """
    Return a copy of `analysis` with unsupported withdrawal flags removed
    and, for paid tiers, examples attached from validated key quotes.
    """
    flags = analysis.get('redFlags') or []
    if not flags:
        return analysis

    tier     = normalize_tier(tier)
    enhanced = copy.deepcopy(analysis)
    flags    = filter_withdrawal_flags(enhanced['redFlags'], build_context(conversation))

    if tier in (PERSONAL, PRO, INSTANT):
        quotes = validated_quotes(enhanced.get('keyQuotes'), conversation)
        names  = participant_names_from(enhanced)
        for flag in flags:
            if tier != PERSONAL and flag.get('participant') == BOTH_PARTICIPANTS and len(names) >= 2:
                flag['participant'] = names[0]
            _attach_examples(flag, quotes, tier)

    enhanced['redFlags'] = flags
    if 'redFlagsCount' in enhanced:
        enhanced['redFlagsCount'] = len(flags)
    if 'redFlagsDetected' in enhanced:
        enhanced['redFlagsDetected'] = bool(flags)
    return enhanced
