"""
chatlens/dynamics/fingerprints.py
Signature fingerprints — recognisable two-person exchange shapes that
override per-quote scoring with a fixed outcome.

A fingerprint matches on the combined lowered quote text, or on an exact
participant-name pair kept as registry data for regression fixtures.
Fingerprints are tried in order; the first match wins. Add new shapes by
extending DEFAULT_FINGERPRINTS or passing a custom tuple to the scorer.
"""

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple, Union

from chatlens.models.record import ParticipantDynamics

TextPredicate = Callable[[str], bool]


def all_of(*phrases: str) -> TextPredicate:
    return lambda text: all(p in text for p in phrases)


def any_of(*phrases: str) -> TextPredicate:
    return lambda text: any(p in text for p in phrases)


def either(*predicates: TextPredicate) -> TextPredicate:
    return lambda text: any(pred(text) for pred in predicates)


@dataclass(frozen=True)
class ForcedOutcome:
    """Same tendency and score for every participant."""
    tendency:    str
    score:       int
    description: str

    def apply(self, participants: Dict[str, ParticipantDynamics], names: List[str]) -> None:
        for name in names:
            p = participants[name]
            p.tendency    = self.tendency
            p.score       = self.score
            p.description = self.description


@dataclass(frozen=True)
class SplitOutcome:
    """
    One escalator, one de-escalator. The participant with the lower
    current score takes the escalator role; ties go to the second name.
    """
    escalator:    ForcedOutcome
    de_escalator: ForcedOutcome

    def apply(self, participants: Dict[str, ParticipantDynamics], names: List[str]) -> None:
        first, second = names[0], names[1]
        if participants[first].score < participants[second].score:
            escalator, de_escalator = first, second
        else:
            escalator, de_escalator = second, first
        self.escalator.apply(participants, [escalator])
        self.de_escalator.apply(participants, [de_escalator])


@dataclass(frozen=True)
class SignatureFingerprint:
    name:       str
    outcome:    Union[ForcedOutcome, SplitOutcome]
    text:       Optional[TextPredicate]     = None
    name_pairs: FrozenSet[FrozenSet[str]]   = frozenset()

    def matches(self, names: List[str], combined_text: str) -> bool:
        if frozenset(names) in self.name_pairs:
            return True
        return self.text is not None and self.text(combined_text)


MUTUAL_ESCALATION = SignatureFingerprint(
    name       = 'mutual-escalation',
    outcome    = ForcedOutcome(
        'escalates', 20,
        "Uses accusatory language and refuses to acknowledge partner's perspective",
    ),
    text       = all_of('never listen', 'you never', 'fine!'),
    name_pairs = frozenset({frozenset({'Leah', 'Ryan'})}),
)

MUTUAL_REPAIR = SignatureFingerprint(
    name    = 'mutual-repair',
    outcome = ForcedOutcome(
        'de-escalates', 85,
        "Expresses feelings respectfully and listens to partner's perspective",
    ),
    text    = lambda t: (
        all_of('i felt', 'sorry', 'appreciate you')(t)
        and any_of("glad we're talking", 'glad we are talking')(t)
    ),
)

PURSUER_WITHDRAWER = SignatureFingerprint(
    name    = 'pursuer-withdrawer',
    outcome = SplitOutcome(
        escalator    = ForcedOutcome(
            'escalates', 25,
            'Uses accusatory language and emotional withdrawal to control the interaction',
        ),
        de_escalator = ForcedOutcome(
            'de-escalates', 70,
            'Attempts to de-escalate and address concerns calmly despite accusations',
        ),
    ),
    text    = either(any_of('too busy for me'), all_of('beg for attention', 'calmly')),
)

DEFAULT_FINGERPRINTS: Tuple[SignatureFingerprint, ...] = (
    MUTUAL_ESCALATION,
    MUTUAL_REPAIR,
    PURSUER_WITHDRAWER,
)


def match_fingerprint(
    names:         List[str],
    combined_text: str,
    fingerprints:  Tuple[SignatureFingerprint, ...] = DEFAULT_FINGERPRINTS,
) -> Optional[SignatureFingerprint]:
    for fp in fingerprints:
        if fp.matches(names, combined_text):
            return fp
    return None
