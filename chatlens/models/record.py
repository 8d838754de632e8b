"""
chatlens/models/record.py
Shared dataclass schema. Parser, detectors, scorer and exporters
all use these types. Do not add logic here — data only.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class Utterance:
    """One attributed transcript line."""
    speaker:    str
    text:       str
    index:      int             = 0     # position among attributed lines
    timestamp:  Optional[str]   = None  # "DD/MM/YYYY, HH:MM" for WhatsApp lines


@dataclass
class FlagExample:
    text:   str
    from_:  str


@dataclass
class RedFlag:
    """Output of the pattern matcher — one per category per call."""
    type:        str
    description: str
    severity:    int
    examples:    List[FlagExample] = field(default_factory=list)
    participant: str               = ''


@dataclass
class KeyQuote:
    """Quote pre-selected upstream, with the upstream analysis text."""
    speaker:  str
    quote:    str
    analysis: str = ''


@dataclass
class ParticipantDynamics:
    tendency:    str        = 'mixed'   # escalates / de-escalates / mixed
    examples:    List[str]  = field(default_factory=list)
    score:       int        = 50        # 0-100, higher = more de-escalating
    description: str        = ''


@dataclass
class ConflictDynamicsResult:
    summary:         str
    participants:    Dict[str, ParticipantDynamics]  = field(default_factory=dict)
    interaction:     Optional[str]                   = None
    recommendations: Optional[List[str]]             = None


@dataclass
class EvasionInstance:
    type:        str
    participant: str
    example:     str
    context:     str = ''
