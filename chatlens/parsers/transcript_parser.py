"""
chatlens/parsers/transcript_parser.py
Tokenizes pasted / exported chat transcripts into attributed utterances.

Supported line formats:
  Speaker: message
  DD/MM/YYYY, HH:MM - Speaker: message        (WhatsApp export)
  [DD/MM/YYYY, HH:MM:SS] Speaker: message     (iOS export, no dash)

Lines matching neither format are dropped silently — system notices,
wrapped continuation lines and blank lines carry no speaker.
Line order is preserved; later detectors rely on it.

File reading: open with BOM detection (UTF-8-BOM, UTF-16 LE/BE), then
strict UTF-8, then UTF-8 with errors='replace'. Exports from phones vary.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Set

from chatlens.detectors.patterns import (
    APOLOGY_RESCHEDULE_MARKERS,
    CANCELLATION_MARKERS,
    HEDGING_MARKERS,
    POSITIVE_REPLY_MARKERS,
    contains_any,
)
from chatlens.models.record import Utterance

logger = logging.getLogger(__name__)

BOM_UTF8     = b'\xef\xbb\xbf'
BOM_UTF16_LE = b'\xff\xfe'
BOM_UTF16_BE = b'\xfe\xff'

# WhatsApp first — a timestamped line also satisfies the plain format.
WHATSAPP_LINE = re.compile(
    r'^\[?(?P<date>\d{1,2}/\d{1,2}/\d{2,4}),\s*'
    r'(?P<time>\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AaPp][Mm])?)(?:\]\s*(?:-\s*)?|\s*-\s*)'
    r'(?P<speaker>[^:]{1,50}?)\s*:\s*(?P<text>\S.*)$'
)
PLAIN_LINE = re.compile(
    r'^(?P<speaker>[^\d\s:\[][^:]{0,49}?)\s*:\s*(?P<text>\S.*)$'
)

_APOSTROPHES = str.maketrans({'’': "'", '‘': "'", 'ʼ': "'"})


@dataclass
class TranscriptContext:
    """
    Utterances plus the auxiliary sets collected while tokenizing.
    Built once per analysis call, read-only afterwards.
    """
    utterances:            List[Utterance]  = field(default_factory=list)
    cancellation_speakers: Set[str]         = field(default_factory=set)
    nuanced_speakers:      Set[str]         = field(default_factory=set)
    positive_speakers:     Set[str]         = field(default_factory=set)
    cancellation_resolved: bool             = False
    message_counts:        Dict[str, int]   = field(default_factory=dict)
    last_index:            Dict[str, int]   = field(default_factory=dict)
    healthy_conversation:  bool             = False

    def speaks_after(self, speaker: str, index: int) -> bool:
        """True if `speaker` sends any message after utterance `index`."""
        return self.last_index.get(speaker, -1) > index

    def others(self, speaker: str) -> List[Utterance]:
        return [u for u in self.utterances if u.speaker != speaker]


def parse_line(line: str, index: int = 0):
    """Return an Utterance for a parseable line, else None."""
    line = _sanitize(line).strip()
    if not line:
        return None

    m = WHATSAPP_LINE.match(line)
    if m:
        return Utterance(
            speaker   = m.group('speaker').strip(),
            text      = m.group('text').strip(),
            index     = index,
            timestamp = f"{m.group('date')}, {m.group('time')}",
        )

    m = PLAIN_LINE.match(line)
    if m:
        return Utterance(
            speaker = m.group('speaker').strip(),
            text    = m.group('text').strip(),
            index   = index,
        )
    return None


def parse_transcript(text: str) -> List[Utterance]:
    """Split on newlines and attribute each line. Unparseable lines are skipped."""
    if not text:
        return []

    utterances: List[Utterance] = []
    skipped = 0
    for raw in text.splitlines():
        utt = parse_line(raw, index=len(utterances))
        if utt is None:
            if raw.strip():
                skipped += 1
            continue
        utterances.append(utt)

    if skipped:
        logger.debug(f"Transcript: {skipped} unattributed line(s) dropped")
    return utterances


def build_context(text: str, healthy_conversation: bool = False) -> TranscriptContext:
    """
    Tokenize and collect per-speaker context in one pass.

    cancellation_resolved is True once an apology / reschedule message
    appears in or after the first cancellation mention.
    """
    ctx = TranscriptContext(healthy_conversation=healthy_conversation)
    ctx.utterances = parse_transcript(text)

    counts: Counter = Counter()
    cancellation_seen = False

    for utt in ctx.utterances:
        lowered = utt.text.lower()
        counts[utt.speaker] += 1
        ctx.last_index[utt.speaker] = utt.index

        if contains_any(lowered, CANCELLATION_MARKERS):
            ctx.cancellation_speakers.add(utt.speaker)
            cancellation_seen = True
        if cancellation_seen and contains_any(lowered, APOLOGY_RESCHEDULE_MARKERS):
            ctx.cancellation_resolved = True

        if contains_any(lowered, HEDGING_MARKERS):
            ctx.nuanced_speakers.add(utt.speaker)
        if contains_any(lowered, POSITIVE_REPLY_MARKERS):
            ctx.positive_speakers.add(utt.speaker)

    ctx.message_counts = dict(counts)
    return ctx


def participants(utterances: Iterable[Utterance]) -> List[str]:
    """Speakers in order of first appearance."""
    seen: List[str] = []
    for utt in utterances:
        if utt.speaker not in seen:
            seen.append(utt.speaker)
    return seen


def parse_transcript_file(path: Path) -> str:
    """
    Read a transcript export. Returns '' if the file cannot be read —
    callers treat that the same as an empty transcript.
    """
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        logger.error(f"File read error {path}: {e}")
        return ''

    if raw.startswith(BOM_UTF8):
        return raw[len(BOM_UTF8):].decode('utf-8', errors='replace')
    if raw.startswith(BOM_UTF16_LE):
        return raw[len(BOM_UTF16_LE):].decode('utf-16-le', errors='replace')
    if raw.startswith(BOM_UTF16_BE):
        return raw[len(BOM_UTF16_BE):].decode('utf-16-be', errors='replace')
    try:
        return raw.decode('utf-8', errors='strict')
    except UnicodeDecodeError:
        return raw.decode('utf-8', errors='replace')


def _sanitize(text: str, max_len: int = 5000) -> str:
    if not text:
        return ''
    cleaned = ''.join(c for c in text if c.isprintable() or c == '\t')
    if len(cleaned) > max_len:
        logger.debug(f"Transcript: line of {len(cleaned)} chars truncated to {max_len}")
    return cleaned.translate(_APOSTROPHES)[:max_len]
