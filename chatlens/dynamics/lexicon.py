"""
chatlens/dynamics/lexicon.py
Weighted lexical classes and thresholds for conflict-dynamics scoring.

All matching is case-insensitive substring. Several entries are stems
('manipulat', 'apologize') so inflections match too.
"""

# ── INDICATORS ───────────────────────────────────────────────

ESCALATION_INDICATORS = (
    'attack', 'accuse', 'blame', 'criticize', 'demand',
    'insult', 'interrupt', 'mock', 'shout', 'threaten',
    'curse', 'aggressive', 'hostile', 'angry', 'deny',
    'gaslight', 'manipulat', 'twist', 'distort', 'never',
    'always', 'dismiss', 'deflect', 'avoid', 'defensive',
)

DE_ESCALATION_INDICATORS = (
    'listen', 'understand', 'acknowledge', 'appreciate', 'apologize',
    'suggest', 'compromise', 'clarify', 'calm', 'reassure',
    'empathize', 'validate', 'supportive', 'soothe', 'evidence',
    'explain', 'patient', 'reasonable', 'accurate', 'fact',
)

# Matched against the quote only, never the upstream analysis text.
REALITY_DISTORTION_PHRASES = (
    'never said', "didn't say", "don't remember", 'you always',
    'making me feel', 'twisting my words', 'obsessed with proving',
    'you never', 'crazy', 'always trying to',
)

MUTUAL_ESCALATION_PHRASES = (
    'never listen', 'you ignore', "don't make an effort", 'impossible to talk',
    'always starting fights', 'make me feel', 'you never', 'you always',
    'fine!', 'because you', "i'm done", 'should be done',
)

# ── WEIGHTS ──────────────────────────────────────────────────

DE_ESCALATION_WEIGHT        = 5
ESCALATION_WEIGHT           = 7
DISTORTION_WEIGHT           = 10
DISTORTION_ESCALATION_BONUS = 2     # added to the escalation count per distortion hit

# ── THRESHOLDS ───────────────────────────────────────────────

NEUTRAL_SCORE       = 50
MIN_SCORE           = 0
MAX_SCORE           = 100
ESCALATES_BELOW     = 40
DE_ESCALATES_ABOVE  = 65
IMBALANCE_GAP       = 30

MUTUAL_LOW_SCORE                 = 45
MUTUAL_SCORE_CAP                 = 30
MIN_EXCLAMATIONS                 = 3
MUTUAL_PHRASES_WITH_EXCLAMATIONS = 3
MUTUAL_PHRASES_ALONE             = 5

HEALTHY_MUTUAL_SCORE = 75
