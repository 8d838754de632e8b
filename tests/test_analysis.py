"""
tests/test_analysis.py
Enhancement pipeline: health-score gate, merge, dynamics fallback,
evasion gating and per-stage failure isolation.
"""

import copy

import pytest

import chatlens.analysis as analysis_mod
from chatlens.analysis import analyze_transcript, enhance_analysis, health_score_of
from chatlens.detectors.red_flag_detector import DetectorSettings


TRANSCRIPT = (
    "Alex: You never listen to me!\n"
    "Jamie: I'm sorry, I didn't realize that.\n"
    "Alex: I'll see you in court."
)

UPSTREAM = {
    'healthScore':  {'score': 50},
    'redFlags':     [{'type': 'Gaslighting', 'description': 'upstream', 'severity': 8,
                      'examples': [], 'participant': 'Alex'}],
    'keyQuotes':    [
        {'speaker': 'Alex',  'quote': 'You never listen to me!',
         'analysis': 'Accusatory, deflects blame.'},
        {'speaker': 'Jamie', 'quote': "I'm sorry, I didn't realize that.",
         'analysis': 'Calm, tries to understand.'},
    ],
    'toneAnalysis': {'participantTones': {'Alex': 'tense', 'Jamie': 'calm'}},
}


class TestHealthScore:

    @pytest.mark.parametrize('analysis,expected', [
        ({'healthScore': {'score': 72}}, 72.0),
        ({'healthScore': 90},            90.0),
        ({'healthScore': '88'},          88.0),
        ({'healthScore': {'score': None}}, None),
        ({'healthScore': 'n/a'},         None),
        ({'healthScore': True},          None),
        ({},                             None),
    ])
    def test_health_score_of(self, analysis, expected):
        assert health_score_of(analysis) == expected


class TestEnhanceAnalysis:

    def test_merges_flags_and_adds_dynamics(self):
        result = enhance_analysis(UPSTREAM, TRANSCRIPT, tier='pro')
        types  = [f['type'] for f in result['redFlags']]
        assert types[0] == 'Gaslighting'
        assert 'All-or-Nothing Thinking' in types
        assert 'Legal Intimidation' in types
        assert result['redFlagsCount'] == len(types)
        assert set(result['conflictDynamics']['participants']) == {'Alex', 'Jamie'}
        assert result['evasionDetection']['detected'] is True

    def test_input_not_mutated(self):
        before = copy.deepcopy(UPSTREAM)
        enhance_analysis(UPSTREAM, TRANSCRIPT, tier='pro')
        assert UPSTREAM == before

    def test_healthy_score_clears_flags(self):
        upstream = {**UPSTREAM, 'healthScore': {'score': 92}}
        result   = enhance_analysis(upstream, TRANSCRIPT, tier='free')
        assert result['redFlags'] == []
        assert result['redFlagsCount'] == 0
        assert result['redFlagsDetected'] is False

    def test_healthy_score_keeps_critical_when_exempt(self):
        upstream = {**UPSTREAM, 'healthScore': {'score': 92}}
        settings = DetectorSettings(exempt_critical_from_health_bypass=True)
        result   = enhance_analysis(upstream, TRANSCRIPT, tier='free', settings=settings)
        assert [f['type'] for f in result['redFlags']] == ['Legal Intimidation']

    def test_free_tier_has_no_evasion_section(self):
        result = enhance_analysis(UPSTREAM, TRANSCRIPT, tier='free')
        assert 'evasionDetection' not in result
        assert 'interaction' not in result['conflictDynamics']

    def test_participants_fall_back_to_transcript(self):
        upstream = {k: v for k, v in UPSTREAM.items() if k != 'toneAnalysis'}
        result   = enhance_analysis(upstream, TRANSCRIPT, tier='pro')
        assert list(result['conflictDynamics']['participants']) == ['Alex', 'Jamie']

    def test_stage_failure_is_isolated(self, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError('scorer exploded')
        monkeypatch.setattr(analysis_mod, 'analyze_conflict_dynamics', boom)

        result = enhance_analysis(UPSTREAM, TRANSCRIPT, tier='pro')
        assert 'conflictDynamics' not in result
        assert result['redFlagsCount'] >= 2
        assert 'evasionDetection' in result


class TestAnalyzeTranscript:

    def test_minimal(self):
        result = analyze_transcript(TRANSCRIPT)
        assert result['redFlagsDetected'] is True
        assert result['redFlagsCount'] == len(result['redFlags'])
        assert 'conflictDynamics' not in result

    def test_with_quotes_and_names(self):
        result = analyze_transcript(
            TRANSCRIPT,
            key_quotes        = UPSTREAM['keyQuotes'],
            participant_names = ['Alex', 'Jamie'],
            tier              = 'personal',
        )
        dynamics = result['conflictDynamics']
        assert len(dynamics['participants']['Alex']['examples']) <= 1
        assert len(dynamics['recommendations']) == 1

    def test_health_score_bypass(self):
        result = analyze_transcript(TRANSCRIPT, health_score=85)
        assert result['redFlags'] == []
        assert result['redFlagsDetected'] is False

    def test_empty_transcript(self):
        result = analyze_transcript('')
        assert result['redFlags'] == []
        assert result['redFlagsCount'] == 0


class TestCriticalUpstreamFlags:

    def test_high_severity_upstream_flag_kept_when_exempt(self):
        upstream = {
            'healthScore': {'score': 90},
            'redFlags':    [{'type': 'Self-Harm Threats', 'description': 'upstream',
                             'severity': 10, 'examples': [], 'participant': 'A'}],
        }
        settings = DetectorSettings(exempt_critical_from_health_bypass=True)
        result   = enhance_analysis(upstream, 'A: hello there', settings=settings)
        assert [f['type'] for f in result['redFlags']] == ['Self-Harm Threats']
        assert result['redFlagsDetected'] is True

    @pytest.mark.parametrize('severity', [8, None, 'high'])
    def test_lower_or_unreadable_severity_dropped(self, severity):
        upstream = {
            'healthScore': {'score': 90},
            'redFlags':    [{'type': 'Gaslighting', 'severity': severity}],
        }
        settings = DetectorSettings(exempt_critical_from_health_bypass=True)
        assert enhance_analysis(upstream, 'A: hello there', settings=settings)['redFlags'] == []


class TestRedFlagEvidenceStage:

    def test_unsupported_upstream_withdrawal_removed(self):
        upstream = {
            'healthScore': {'score': 50},
            'redFlags':    [{'type': 'Stonewalling', 'description': 'upstream',
                             'severity': 6, 'participant': 'Jamie'}],
        }
        conversation = (
            "Alex: Why didn't you call?\n"
            "Jamie: Let me explain, the meeting ran late.\n"
        )
        result = enhance_analysis(upstream, conversation, tier='pro')
        assert 'Stonewalling' not in [f['type'] for f in result['redFlags']]
        assert result['redFlagsCount'] == len(result['redFlags'])

    def test_examples_from_validated_quotes(self):
        upstream = copy.deepcopy(UPSTREAM)
        upstream['keyQuotes'].append({'speaker': 'Alex', 'quote': 'I never said that',
                                      'analysis': 'Gaslighting the partner.'})
        upstream['keyQuotes'].append({'speaker': 'Alex', 'quote': "I'll see you in court.",
                                      'analysis': 'Gaslighting and threats.'})
        result = enhance_analysis(upstream, TRANSCRIPT, tier='pro')
        gaslighting = next(f for f in result['redFlags'] if f['type'] == 'Gaslighting')
        assert gaslighting['examples'] == [{'text': "I'll see you in court.", 'from': 'Alex'}]

    def test_stage_failure_keeps_flags(self, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError('enhancer exploded')
        monkeypatch.setattr(analysis_mod, 'enhance_red_flags', boom)

        result = enhance_analysis(UPSTREAM, TRANSCRIPT, tier='pro')
        assert result['redFlags'][0]['type'] == 'Gaslighting'
