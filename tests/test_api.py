"""
tests/test_api.py
─────────────────────────────────────────────────────────────────────────────
Tests for chatlens.api — ChatLensAPI class and the FastAPI endpoints.

Coverage:
  - red_flags: text / file input, health bypass, validation
  - conflict_dynamics: null result, tier from config
  - analyze: upstream enhancement vs. built result
  - get_config / update_config: persistence, unknown keys and bad values rejected
  - HTTP: every endpoint through TestClient, 400 mapping for ValueError

All tests use a temporary project root — no config in the working tree.
"""

import pytest
from fastapi.testclient import TestClient

from chatlens.api import ChatLensAPI, _build_app
from chatlens.config import CONFIG_FILENAME


TRANSCRIPT = (
    "Alex: You never listen to me!\n"
    "Jamie: I'm sorry, I didn't realize that."
)

QUOTES = [
    {'speaker': 'Alex',  'quote': 'You never listen, you always blame me!',
     'analysis': 'Accusatory and hostile.'},
    {'speaker': 'Jamie', 'quote': 'I understand. Can we calmly clarify what happened?',
     'analysis': 'Stays calm and patient.'},
]


@pytest.fixture
def api(tmp_path):
    return ChatLensAPI(project_root=tmp_path)


@pytest.fixture
def client(tmp_path):
    return TestClient(_build_app(project_root=tmp_path))


# ── IMPORTABLE CLASS ─────────────────────────────────────────────────────────

class TestChatLensAPI:

    def test_red_flags_from_text(self, api):
        flags = api.red_flags(TRANSCRIPT)
        assert [f['type'] for f in flags] == ['All-or-Nothing Thinking']
        assert flags[0]['examples'][0]['from'] == 'Alex'

    def test_red_flags_from_file(self, api, tmp_path):
        path = tmp_path / 'chat.txt'
        path.write_text(TRANSCRIPT, encoding='utf-8')
        assert api.red_flags(transcript_path=str(path))

    def test_red_flags_missing_file(self, api, tmp_path):
        with pytest.raises(ValueError):
            api.red_flags(transcript_path=str(tmp_path / 'nope.txt'))

    @pytest.mark.parametrize('score', [-1, 101])
    def test_health_score_out_of_range(self, api, score):
        with pytest.raises(ValueError):
            api.red_flags(TRANSCRIPT, health_score=score)

    def test_health_bypass_uses_config_threshold(self, api):
        assert api.red_flags(TRANSCRIPT, health_score=80)
        api.update_config({'health_bypass_threshold': 75})
        assert api.red_flags(TRANSCRIPT, health_score=80) == []

    def test_conflict_dynamics_none(self, api):
        assert api.conflict_dynamics([], ['Alex', 'Jamie']) is None

    def test_conflict_dynamics_default_tier_from_config(self, api):
        free = api.conflict_dynamics(QUOTES, ['Alex', 'Jamie'])
        assert 'recommendations' not in free
        api.update_config({'default_tier': 'pro'})
        pro = api.conflict_dynamics(QUOTES, ['Alex', 'Jamie'])
        assert pro['recommendations']
        assert pro['participants']['Alex']['examples']

    def test_analyze_builds_result(self, api):
        result = api.analyze(TRANSCRIPT, key_quotes=QUOTES,
                             participant_names=['Alex', 'Jamie'], tier='personal')
        assert result['redFlagsCount'] == 1
        assert result['conflictDynamics']['summary'].startswith('Alex is the primary source')
        assert result['evasionDetection']['detected'] is False

    def test_analyze_enhances_upstream(self, api):
        upstream = {'redFlags': [], 'healthScore': {'score': 95}, 'keyQuotes': QUOTES}
        result = api.analyze(TRANSCRIPT, analysis=upstream, participant_names=None)
        assert result['redFlags'] == []
        assert 'conflictDynamics' in result

    def test_update_config_persists(self, api, tmp_path):
        config = api.update_config({'default_tier': 'instant'})
        assert config['default_tier'] == 'instant'
        assert (tmp_path / CONFIG_FILENAME).exists()
        assert api.get_config()['default_tier'] == 'instant'

    def test_update_config_rejects_unknown(self, api):
        with pytest.raises(ValueError):
            api.update_config({'db_path': 'x.db'})

    def test_update_config_rejects_string_flag(self, api, tmp_path):
        with pytest.raises(ValueError):
            api.update_config({'exempt_critical_from_health_bypass': 'false'})
        assert not (tmp_path / CONFIG_FILENAME).exists()


# ── HTTP ─────────────────────────────────────────────────────────────────────

class TestHttp:

    def test_health(self, client):
        r = client.get('/health')
        assert r.status_code == 200
        assert r.json()['status'] == 'ok'

    def test_red_flags(self, client):
        r = client.post('/red-flags', json={'conversation': TRANSCRIPT})
        assert r.status_code == 200
        body = r.json()
        assert body['redFlagsCount'] == 1
        assert body['redFlags'][0]['participant'] == 'Alex'

    def test_red_flags_empty(self, client):
        r = client.post('/red-flags', json={'conversation': '', 'health_score': 10})
        assert r.status_code == 200
        assert r.json() == {'redFlags': [], 'redFlagsCount': 0}

    def test_red_flags_bad_score(self, client):
        r = client.post('/red-flags', json={'conversation': TRANSCRIPT, 'health_score': -5})
        assert r.status_code == 400

    def test_conflict_dynamics(self, client):
        r = client.post('/conflict-dynamics', json={
            'key_quotes':        QUOTES,
            'participant_names': ['Alex', 'Jamie'],
            'tier':              'pro',
        })
        assert r.status_code == 200
        dynamics = r.json()['conflictDynamics']
        assert dynamics['participants']['Alex']['tendency'] == 'escalates'
        assert dynamics['participants']['Jamie']['tendency'] == 'de-escalates'

    def test_conflict_dynamics_null(self, client):
        r = client.post('/conflict-dynamics', json={'key_quotes': [], 'participant_names': []})
        assert r.status_code == 200
        assert r.json() == {'conflictDynamics': None}

    def test_analyze(self, client):
        r = client.post('/analyze', json={
            'conversation':      TRANSCRIPT,
            'key_quotes':        QUOTES,
            'participant_names': ['Alex', 'Jamie'],
            'tier':              'pro',
        })
        assert r.status_code == 200
        body = r.json()
        assert body['redFlagsDetected'] is True
        assert len(body['conflictDynamics']['recommendations']) == 4

    def test_config_round_trip(self, client):
        r = client.post('/config', json={'default_tier': 'personal'})
        assert r.status_code == 200
        assert client.get('/config').json()['config']['default_tier'] == 'personal'

    def test_config_unknown_key(self, client):
        r = client.post('/config', json={'xml_dir': '/tmp'})
        assert r.status_code == 400

    def test_config_bad_value(self, client):
        r = client.post('/config', json={'exempt_critical_from_health_bypass': 'false'})
        assert r.status_code == 400
        assert client.get('/config').json()['config']['exempt_critical_from_health_bypass'] is False
