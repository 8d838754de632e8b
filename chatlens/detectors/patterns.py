"""
chatlens/detectors/patterns.py
Static pattern catalogue and lexicons for the red-flag detector.

Pure data, compiled once at import. Rules are evaluated in catalogue
order; several rules may share a category — the first one that survives
suppression claims the category for the call.

Text reaching these patterns has curly apostrophes normalised to "'"
by the transcript parser.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Pattern, Tuple

# Categories that are never dropped by the healthy-conversation stage,
# regardless of severity.
CRITICAL_CATEGORIES = frozenset({
    'Child Welfare Violations',
    'Medical Control',
    'Legal Intimidation',
})
CRITICAL_SEVERITY = 9


@dataclass(frozen=True)
class PatternRule:
    pattern:     Pattern
    type:        str
    description: str
    severity:    int

    @property
    def is_critical(self) -> bool:
        return self.severity >= CRITICAL_SEVERITY or self.type in CRITICAL_CATEGORIES


def _rule(pattern: str, type_: str, description: str, severity: int) -> PatternRule:
    return PatternRule(re.compile(pattern, re.IGNORECASE), type_, description, severity)


# ── RULE CATALOGUE ───────────────────────────────────────────

PATTERN_RULES: Tuple[PatternRule, ...] = (

    # Guilt Tripping
    _rule(r"(too busy for me|guess you're too busy|you just don't care about me"
          r"|after all i('ve| have) done for you|you never appreciate what i"
          r"|if you really cared you would|can't believe you would do this to me"
          r"|you didn't even notice)",
          'Guilt Tripping',
          'Using guilt to make the other person feel responsible for their feelings', 7),
    _rule(r"(always (been )?there for you|everything i do for you|shouldn't have to (tell|ask) you"
          r"|i do so much for you)",
          'Guilt Tripping',
          'Keeping score of sacrifices to create a sense of debt', 6),

    # Gaslighting
    _rule(r"(that never happened|didn't happen|you're imagining things|making things up"
          r"|you're remembering (it )?wrong|i never said that)",
          'Gaslighting',
          'Making someone question their own memory or perception of events', 8),
    _rule(r"(that's not what happened|twisting my words|you're crazy|you're losing it)",
          'Gaslighting',
          'Denying or rewriting shared reality', 8),

    # Emotional Manipulation
    _rule(r"(if you really loved me|if you loved me|show me you mean it|prove it"
          r"|no one else would|without me you|look what you made me do|you owe me"
          r"|after everything i did|you should feel bad)",
          'Emotional Manipulation',
          'Using affection or obligation as leverage to control behaviour', 7),
    _rule(r"(care more than you|care about you|love you more)",
          'Emotional Manipulation',
          'Manipulating through claims of greater affection', 6),

    # Emotional Withdrawal
    _rule(r"(done talking|not talking about this|not discussing this|don't want to talk"
          r"|leave me alone|i'm not doing this|forget it|i can't do this anymore"
          r"|this conversation is over)",
          'Emotional Withdrawal',
          'Shutting down communication instead of engaging with the issue', 6),

    # Blame Shifting
    _rule(r"(always my fault|blame me for|make me the problem|this is your fault"
          r"|it's your fault|you made me|you started it)",
          'Blame Shifting',
          'Avoiding responsibility by assigning blame to the other person', 7),

    # Victim Mentality
    _rule(r"(everyone is against me|no one cares about me|i'm always the bad guy"
          r"|why does this always happen to me|nobody ever helps me|poor me)",
          'Victim Mentality',
          'Casting oneself as the perpetual victim to deflect accountability', 6),

    # Moving the Goalposts
    _rule(r"(that's not enough|still not good enough|you should have also|that doesn't count"
          r"|now you need to)",
          'Moving the Goalposts',
          'Changing expectations once they are met', 6),

    # Love Bombing
    _rule(r"(never loved anyone like|soulmate|you complete me|meant to be|no one compares"
          r"|perfect for me|never felt this way)",
          'Love Bombing',
          'Overwhelming affection used to create fast attachment or dependence', 5),

    # Dismissing Feelings
    _rule(r"(you're overreacting|too sensitive|being dramatic|get over it|calm down"
          r"|stop being so emotional|it's not a big deal)",
          'Dismissing Feelings',
          "Invalidating or minimising the other person's emotions", 6),

    # Controlling Behavior
    _rule(r"(you're not allowed|i forbid|need my permission|give me your password"
          r"|you can't go|i decide what)",
          'Controlling Behavior',
          'Restricting autonomy or demanding control over decisions', 7),
    _rule(r"(who were you (with|talking to)|why didn't you answer|share your location"
          r"|send me a (photo|picture) of where)",
          'Controlling Behavior',
          'Monitoring whereabouts or communications', 6),

    # Passive Aggression
    _rule(r"(fine,? whatever|must be nice|thanks for nothing|if that's what you want"
          r"|no,? it's fine|good for you|as usual)",
          'Passive Aggression',
          'Expressing hostility indirectly through sarcasm or veiled remarks', 5),

    # Emotional Blackmail
    _rule(r"(if you leave,? i('ll| will)|i'll leave you if|you'll regret|unless you"
          r"|or else|i'll tell everyone)",
          'Emotional Blackmail',
          'Threatening consequences to force compliance', 8),

    # Passivity
    _rule(r"(i didn't realize|i didn't know|i wasn't aware|i had no idea"
          r"|i don't know what you want|whatever you want|up to you"
          r"|i don't know what to say|not my problem)",
          'Passivity',
          'Avoiding ownership of the issue or of the relationship', 4),

    # All-or-Nothing Thinking
    _rule(r"(you never|you always|nothing ever|everything is ruined|every single time"
          r"|not once have you|you don't care at all)",
          'All-or-Nothing Thinking',
          'Using absolutes to exaggerate situations', 5),

    # Isolation
    _rule(r"(stop seeing your (friends|family)|you don't need them|i don't want you talking to"
          r"|your friends are (bad|toxic)|it's just us)",
          'Isolation',
          'Cutting the other person off from friends or family', 7),

    # Financial Control
    _rule(r"(give me your (paycheck|card)|you can't spend|i control the money"
          r"|you don't get any money|hand over your money)",
          'Financial Control',
          'Controlling access to money as a means of control', 7),

    # Contempt
    _rule(r"\b(you're pathetic|you're worthless|idiot|stupid|loser|disgusting)\b",
          'Contempt',
          'Insults and name-calling that express disdain', 7),

    # Jealousy
    _rule(r"(who is (he|she)\b|why were you talking to|you're cheating|flirting with)",
          'Jealousy',
          'Possessive suspicion about contact with others', 6),

    # Threatening Behavior
    _rule(r"(i will hurt you|i'll hurt you|you'll pay for|watch your back|i know where you)",
          'Threatening Behavior',
          'Explicit or implied threats of harm', 9),

    # Crisis Escalation
    _rule(r"(call(ed|ing)? (the )?police|call(ed|ing)? 911|emergency room|child protective|\bcps\b)",
          'Crisis Escalation',
          'Escalating a conflict to emergency services or authorities', 7),

    # Legal Intimidation
    _rule(r"(see you in court|my lawyer will|i'll sue|take you to court|full custody"
          r"|restraining order)",
          'Legal Intimidation',
          'Using legal threats to intimidate or gain leverage', 8),

    # Custody Violation
    _rule(r"(you('ll| will) never see (the|your|our) (kids|children|son|daughter)"
          r"|keep(ing)? the kids from|not bringing (him|her|them) back"
          r"|won't let you see (the kids|them|him|her)|taking the kids)",
          'Custody Violation',
          'Withholding children or violating custody arrangements', 9),

    # Child Welfare Violations
    _rule(r"(left (him|her|them|the kids) alone|didn't feed (him|her|them)|no car seat"
          r"|drunk with the kids|hit (him|her|the kids))",
          'Child Welfare Violations',
          "Conduct that endangers a child's safety or wellbeing", 8),

    # Medical Control
    _rule(r"(stop taking (your|her|his) (meds|medication)|won't let you see a doctor"
          r"|you don't need (therapy|a doctor|medication)|hid(ing)? (your|her|his) (meds|medication)"
          r"|not taking (him|her) to the doctor)",
          'Medical Control',
          'Interfering with access to medical care or medication', 8),

    # Self-Harm Threats
    _rule(r"(kill myself|end it all|hurt myself|don't want to live|better off without me"
          r"|\bsuicide\b)",
          'Self-Harm Threats',
          'Statements of self-harm or suicide, including as leverage', 10),
)


# ── LEXICONS ─────────────────────────────────────────────────
# All matching is case-insensitive substring on lowered text.

# Applies to every category: a match in text like this is never flagged.
SUPPORTIVE_ALLOW_LIST = (
    'always here for you', "i'm here for you", 'thank you', 'thanks so much',
    'grateful', 'i appreciate you', 'proud of you', 'happy for you',
)

HEDGING_MARKERS = (
    'maybe', 'perhaps', 'felt like', 'i feel like', 'sometimes', 'kind of',
    'sort of', 'i think', 'it seems', 'might',
)

CANCELLATION_MARKERS = (
    'cancel', 'missed', "didn't show", 'no-show', 'no show', 'bailed',
    'stood me up', "can't make it", 'rain check',
)

APOLOGY_RESCHEDULE_MARKERS = (
    'sorry', 'apologize', 'apologise', 'reschedule', 'make it up to you',
    'another time', 'next week',
)

POSITIVE_REPLY_MARKERS = (
    'thank', 'appreciate', 'love you', 'means a lot', 'glad', 'of course',
    'sounds good', 'happy to',
)

# Emotional Withdrawal
DISENGAGEMENT_MARKERS = (
    'done talking', 'not talking', 'stop talking', 'not discussing',
    "don't want to talk", 'leave me alone', 'conversation is over',
    "not doing this", 'forget it', 'not responding', "i'm done",
    "can't do this anymore",
)
FRUSTRATION_MARKERS = (
    'tired', 'exhausted', 'frustrated', "can't do this", 'so done',
    'need a break', 'overwhelmed', 'drained',
)
CONTINUED_ENGAGEMENT_MARKERS = (
    'not trying to', 'want us to', 'talk later', 'when i calm down',
    "when i'm calmer", 'i want to fix',
)

# Emotional Manipulation
REASSURANCE_MARKERS = (
    'care about you', 'love you', "i'm here", 'worried about you',
    'you matter', 'mean a lot to me', 'care more than you',
)
LEVERAGE_MARKERS = (
    'but you', 'if you', 'you should', 'you owe', 'unless you', 'after everything',
)
RECONCILIATION_MARKERS = (
    "let's work", 'work through', 'work on this', 'make this right', 'fix this',
    'can we talk', 'start over', 'figure this out',
)
CONDITIONAL_LEVERAGE_MARKERS = (
    'only if', 'unless you', 'if you', 'as long as you', 'or else',
)

# Guilt Tripping
SUPPORTIVE_REPLY_MARKERS = (
    'of course', 'happy to help', 'no problem', 'anytime', 'glad to help',
    'no worries', 'happy to',
)
APPRECIATION_MARKERS = (
    'appreciate', 'thank', 'grateful', 'means a lot', 'means so much',
)
MANIPULATIVE_FRAMING_MARKERS = (
    'after all', 'for once', 'at least', "don't even", 'you never',
    'you should', 'unlike you', 'the least you',
)

# Cancellation-thread resentment
CANCELLATION_SENSITIVE_CATEGORIES = frozenset({'Guilt Tripping', 'Passive Aggression'})

# Custody Violation / Legal Intimidation / Crisis Escalation
PROTECTIVE_CATEGORIES = frozenset({
    'Custody Violation', 'Legal Intimidation', 'Crisis Escalation',
})
PROTECTIVE_REPORT_MARKERS = (
    'i called', 'i had to call', 'i contacted', 'i reported', 'took her to',
    'took him to', 'she needs', 'he needs', 'her medication', 'his medication',
    'doctor said', 'for her safety', 'for his safety', 'for their safety',
    'the police came', 'the school called',
)
EVASIVE_REPLY = re.compile(
    r"^\W*(busy|later|gtg|g2g|got to go|gotta go|can't talk|not now|ttyl|idk|k|ok|whatever)\W*$",
    re.IGNORECASE,
)
EVASIVE_WORDS = ('busy', 'later', 'gtg')
UNDER_RESPONSIVE_MAX_REPLIES = 2

# Passivity
NEUTRAL_AWARENESS_MARKERS = (
    "didn't realize", "didn't know", "wasn't aware", 'had no idea', "didn't notice",
)
DISMISSIVE_MARKERS = (
    'whatever', 'so what', 'not my problem', "don't care", 'who cares',
)
BLAME_AVOIDANT_MARKERS = (
    'not my fault', "you didn't tell me", 'how was i supposed', 'you should have told',
    'you never said',
)
MINIMIZING_MARKERS = (
    'overreacting', 'not a big deal', 'no big deal', "it's nothing", 'just a', 'chill',
)
WILLINGNESS_MARKERS = (
    'next time', 'will try', "i'll try", 'i can try', 'going forward',
    "i'll do better", 'i will do better', "i'll work on",
)


def contains_any(text_lower: str, phrases: Iterable[str]) -> bool:
    return any(p in text_lower for p in phrases)


# ── UPSTREAM WITHDRAWAL FLAG EVIDENCE ────────────────────────
# Flags whose type or description names one of these are checked
# against the transcript before they are reported.
WITHDRAWAL_FLAG_TERMS = ('stonewalling', 'withdrawal')

# A participant with this many messages is still engaged.
WITHDRAWAL_MAX_MESSAGES = 3

EXPLAINING_MARKERS = (
    "that's not what", "i didn't mean", 'i just want to', 'let me explain',
    "i'm trying to", 'what i meant', 'all i said', 'i was just', "i'm just",
    "i've been", 'i need you to', 'i want you to',
)
OPENNESS_MARKERS = (
    'we can talk', "let's discuss", "i'm listening", 'tell me more',
    'i hear you', 'i understand', "maybe you're right", 'i see your point',
    'can we', 'should we', 'could we',
)
TERMINAL_MARKERS = DISENGAGEMENT_MARKERS + (
    'whatever.', 'silent treatment', 'end of discussion',
    'not having this conversation', 'walk away', 'leaving now',
)
