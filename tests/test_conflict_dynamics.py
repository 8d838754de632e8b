"""
tests/test_conflict_dynamics.py
Conflict-dynamics scorer: score arithmetic, tendencies, tier gating,
fingerprints, mutual escalation and narrative output.
"""

import pytest

from chatlens.dynamics.conflict_dynamics import (
    analyze_conflict_dynamics,
    coerce_quotes,
    conflict_dynamics_to_dict,
    enhance_with_conflict_dynamics,
    participant_names_from,
    score_quote,
    tendency_for,
)
from chatlens.dynamics.fingerprints import (
    DEFAULT_FINGERPRINTS,
    ForcedOutcome,
    SignatureFingerprint,
    all_of,
    match_fingerprint,
)
from chatlens.models.record import KeyQuote


# ── FIXTURES ─────────────────────────────────────────────────

CALM_QUOTES = [
    {'speaker': 'Alex',  'quote': "I understand how you feel, let's clarify what happened.",
     'analysis': 'Calm, acknowledges partner.'},
    {'speaker': 'Jamie', 'quote': 'I understand, and I appreciate you explaining it.',
     'analysis': 'Listens and stays calm.'},
]

IMBALANCED_QUOTES = [
    {'speaker': 'Alex',  'quote': 'You never listen, you always blame me!',
     'analysis': 'Accusatory and hostile.'},
    {'speaker': 'Jamie', 'quote': 'I understand. Can we calmly clarify what happened?',
     'analysis': 'Stays calm and patient.'},
]


# ── SCORING PRIMITIVES ───────────────────────────────────────

class TestScoring:

    @pytest.mark.parametrize('score,tendency', [
        (0, 'escalates'), (39, 'escalates'), (40, 'mixed'), (50, 'mixed'),
        (65, 'mixed'), (66, 'de-escalates'), (100, 'de-escalates'),
    ])
    def test_tendency_boundaries(self, score, tendency):
        assert tendency_for(score) == tendency

    def test_indicator_counted_once_across_quote_and_analysis(self):
        esc, de, rd = score_quote(KeyQuote('A', 'I understand', 'they understand'))
        assert (esc, de, rd) == (0, 1, 0)

    def test_distortion_adds_to_escalation(self):
        esc, de, rd = score_quote(KeyQuote('A', "You're crazy, I never said that", ''))
        # 'never' indicator + 2 distortion phrases ('never said', 'crazy') at +2 each
        assert rd  == 2
        assert esc == 1 + 2 * 2
        assert de  == 0

    def test_distortion_ignores_analysis_text(self):
        _, _, rd = score_quote(KeyQuote('A', 'ok', 'says you never help'))
        assert rd == 0

    def test_coerce_quotes(self):
        quotes = coerce_quotes([
            {'speaker': 'A', 'quote': None, 'analysis': None},
            {'quote': 'no speaker'},
            KeyQuote('B', 'hi'),
            'junk',
        ])
        assert [(q.speaker, q.quote, q.analysis) for q in quotes] == [
            ('A', '', ''), ('B', 'hi', ''),
        ]


# ── NULL INPUTS ──────────────────────────────────────────────

class TestNullInputs:

    @pytest.mark.parametrize('quotes,names', [
        ([], ['A', 'B']),
        (None, ['A', 'B']),
        (CALM_QUOTES, []),
        (CALM_QUOTES, None),
    ])
    def test_returns_none(self, quotes, names):
        assert analyze_conflict_dynamics(quotes, names, 'pro') is None

    def test_unknown_speakers_ignored(self):
        result = analyze_conflict_dynamics(
            [{'speaker': 'Stranger', 'quote': 'You never listen!', 'analysis': 'hostile'}],
            ['A', 'B', 'C'],
            'pro',
        )
        assert set(result.participants) == {'A', 'B', 'C'}
        for p in result.participants.values():
            assert p.score    == 50
            assert p.tendency == 'mixed'
            assert p.examples == []


# ── TWO-PERSON SCENARIOS ─────────────────────────────────────

class TestScenarios:

    def test_mutual_de_escalation(self):
        result = analyze_conflict_dynamics(CALM_QUOTES, ['Alex', 'Jamie'], 'pro')
        for p in result.participants.values():
            assert p.score > 65
            assert p.tendency == 'de-escalates'
        assert result.summary == 'All participants show de-escalating communication patterns.'

    def test_leah_ryan_registry_pair(self):
        quotes = [{'speaker': 'Leah', 'quote': 'I understand, thank you.', 'analysis': 'calm'}]
        result = analyze_conflict_dynamics(quotes, ['Leah', 'Ryan'], 'pro')
        for p in result.participants.values():
            assert p.tendency == 'escalates'
            assert p.score    == 20
        assert result.summary == 'All participants tend to escalate conflicts.'

    def test_mutual_escalation_fingerprint_by_text(self):
        quotes = [
            {'speaker': 'Sam', 'quote': 'You never listen to anything I say.'},
            {'speaker': 'Kim', 'quote': 'Fine! Do whatever you want.'},
        ]
        result = analyze_conflict_dynamics(quotes, ['Sam', 'Kim'], 'free')
        assert {p.score for p in result.participants.values()} == {20}

    def test_severe_imbalance(self):
        result = analyze_conflict_dynamics(IMBALANCED_QUOTES, ['Alex', 'Jamie'], 'pro')
        alex, jamie = result.participants['Alex'], result.participants['Jamie']
        assert alex.tendency  == 'escalates'
        assert alex.score     == 0
        assert jamie.tendency == 'de-escalates'
        assert jamie.score    == 70
        assert alex.description == 'Uses hostile language and increases conflict intensity'
        assert result.summary == (
            'Alex is the primary source of conflict escalation, while '
            'Jamie attempts to maintain constructive communication.'
        )
        assert 'clearly imbalanced' in result.interaction
        assert len(result.recommendations) == 4

    def test_mutual_escalation_heuristic(self):
        quotes = [
            {'speaker': 'Sam', 'quote': 'You never listen! You always make me feel small!'},
            {'speaker': 'Kim', 'quote': "Because you ignore me! I'm done!"},
        ]
        result = analyze_conflict_dynamics(quotes, ['Sam', 'Kim'], 'pro', fingerprints=())
        for p in result.participants.values():
            assert p.tendency == 'escalates'
            assert p.score    <= 30
            assert p.description == 'Uses exaggerated language and contributes to increasing tension'
        assert result.summary == 'All participants tend to escalate conflicts.'

    def test_all_scores_below_mutual_threshold(self):
        quotes = [
            {'speaker': 'A', 'quote': 'ok', 'analysis': 'blame'},
            {'speaker': 'B', 'quote': 'ok', 'analysis': 'blame'},
        ]
        result = analyze_conflict_dynamics(quotes, ['A', 'B'], 'pro', fingerprints=())
        assert {n: (p.tendency, p.score) for n, p in result.participants.items()} == {
            'A': ('escalates', 30),
            'B': ('escalates', 30),
        }
        assert result.summary == 'All participants tend to escalate conflicts.'

    def test_pursuer_withdrawer_split(self):
        quotes = [
            {'speaker': 'Ana', 'quote': "Guess you're too busy for me again."},
            {'speaker': 'Ben', 'quote': 'I hear you. Let me explain what happened at work.'},
        ]
        result = analyze_conflict_dynamics(quotes, ['Ana', 'Ben'], 'pro')
        assert result.participants['Ana'].tendency == 'escalates'
        assert result.participants['Ana'].score    == 25
        assert result.participants['Ben'].tendency == 'de-escalates'
        assert result.participants['Ben'].score    == 70


# ── INVARIANTS ───────────────────────────────────────────────

class TestInvariants:

    @pytest.mark.parametrize('quote,analysis', [
        ('You never listen, you always blame me, you are crazy!', 'hostile, aggressive, accuse'),
        ('I understand, I appreciate it, let me explain and clarify calmly.',
         'supportive, patient, reasonable, validate, reassure, acknowledge, listen'),
    ])
    def test_scores_clamped_integers(self, quote, analysis):
        quotes = [{'speaker': 'A', 'quote': quote, 'analysis': analysis}] * 5
        result = analyze_conflict_dynamics(quotes, ['A', 'B', 'C'], 'pro')
        for p in result.participants.values():
            assert isinstance(p.score, int)
            assert 0 <= p.score <= 100
            assert p.tendency == tendency_for(p.score)

    @pytest.mark.parametrize('tier', ['free', 'FREE', 'unknown-tier', None])
    def test_free_and_unknown_tiers_have_no_examples(self, tier):
        result = analyze_conflict_dynamics(IMBALANCED_QUOTES, ['Alex', 'Jamie'], tier)
        for p in result.participants.values():
            assert p.examples == []
        assert result.interaction     is None
        assert result.recommendations is None

    def test_personal_tier_limits(self):
        quotes = [
            {'speaker': 'Alex', 'quote': 'You always blame me.', 'analysis': 'hostile'},
            {'speaker': 'Alex', 'quote': 'I never said that!', 'analysis': 'denies'},
        ]
        result = analyze_conflict_dynamics(quotes, ['Alex', 'Jamie', 'Pat'], 'personal')
        assert result.participants['Alex'].examples == ['You always blame me.']
        assert result.interaction is not None
        assert len(result.recommendations) == 1

    def test_distortion_examples_come_first(self):
        quotes = [
            {'speaker': 'Alex', 'quote': 'Stop shouting.', 'analysis': 'angry'},
            {'speaker': 'Alex', 'quote': 'Stop shouting.', 'analysis': 'angry'},
            {'speaker': 'Alex', 'quote': 'I never said that.', 'analysis': ''},
        ]
        result = analyze_conflict_dynamics(quotes, ['Alex', 'Jamie', 'Pat'], 'pro')
        assert result.participants['Alex'].examples == ['I never said that.', 'Stop shouting.']


# ── FINGERPRINTS ─────────────────────────────────────────────

class TestFingerprints:

    def test_registry_order(self):
        assert [fp.name for fp in DEFAULT_FINGERPRINTS] == [
            'mutual-escalation', 'mutual-repair', 'pursuer-withdrawer',
        ]

    def test_no_match(self):
        assert match_fingerprint(['A', 'B'], 'hello there') is None

    def test_custom_fingerprint(self):
        fp = SignatureFingerprint(
            name    = 'test-calm',
            outcome = ForcedOutcome('de-escalates', 90, 'Stays calm'),
            text    = all_of('pineapple'),
        )
        result = analyze_conflict_dynamics(
            [{'speaker': 'A', 'quote': 'Pineapple pizza again?'}], ['A', 'B'], 'pro',
            fingerprints=(fp,),
        )
        assert all(p.score == 90 for p in result.participants.values())


# ── SERIALISATION / ENHANCEMENT ──────────────────────────────

class TestEnhance:

    def test_dict_omits_gated_fields(self):
        result = analyze_conflict_dynamics(CALM_QUOTES, ['Alex', 'Jamie'], 'free')
        d = conflict_dynamics_to_dict(result)
        assert set(d) == {'summary', 'participants'}
        assert set(d['participants']['Alex']) == {'tendency', 'examples', 'score', 'description'}

    def test_participant_names_from_tone_analysis(self):
        analysis = {'toneAnalysis': {'participantTones': {'Alex': 'calm', 'Jamie': 'tense'}}}
        assert participant_names_from(analysis) == ['Alex', 'Jamie']
        assert participant_names_from({}) == []

    def test_enhance_attaches_section(self):
        analysis = {
            'keyQuotes':    CALM_QUOTES,
            'toneAnalysis': {'participantTones': {'Alex': '', 'Jamie': ''}},
        }
        enhanced = enhance_with_conflict_dynamics(analysis, 'personal')
        assert 'conflictDynamics' not in analysis
        assert enhanced['conflictDynamics']['summary']
        assert 'interaction' in enhanced['conflictDynamics']

    def test_enhance_without_participants_is_noop(self):
        analysis = {'keyQuotes': CALM_QUOTES}
        assert enhance_with_conflict_dynamics(analysis, 'pro') is analysis
