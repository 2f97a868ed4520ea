"""
Expression classifier - picks the character's facial expression from a reply.

Keyword rules are ordered per persona and the first match wins. Several rules
can match the same text (e.g. "!!" next to an angry word); order decides.
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple

class Expression(str, Enum):
    """Facial expression tags; values match the model's expression names."""
    NORMAL = "Normal"
    SMILE = "Smile"
    SAD = "Sad"
    ANGRY = "Angry"
    SURPRISED = "Surprised"

    @classmethod
    def parse(cls, name: Optional[str]) -> "Expression":
        """Resolve an expression name, falling back to Normal."""
        if not name:
            return cls.NORMAL
        for expression in cls:
            if expression.value.lower() == str(name).strip().lower():
                return expression
        return cls.NORMAL

Rule = Tuple[Expression, Pattern[str]]

def _rule(expression: Expression, pattern: str) -> Rule:
    return expression, re.compile(pattern, re.IGNORECASE)

_ANGRY = r"\b(hmph|baka|idiot|jerk|annoying|angry|mad|furious|how dare|stop it|ugh)\b"
_SAD = r"\b(sad|sorry|lonely|miss(ed)? you|cry(ing)?|tears?|sigh|hurts?|unfortunately)\b|\.\.\.\s*$"
_SURPRISED = r"(!\?|\?!|!!)|\b(wha+t|eh+|whoa|wow|really\?|no way|oh my)\b"
_SMILE = r"\b(haha|hehe|ehehe|happy|glad|love|yay|cute|fun|thank(s| you))\b|~|♥|❤|:\)|\^\^"

_CONFIDENT_SAD = r"\b(sad|sorry|lonely|miss(ed)? you|heartbroken|unfortunately|that hurts)\b"
_CONFIDENT_ANGRY = r"\b(annoyed|angry|mad|rude|seriously\?|not cool|frustrat\w*)\b"
_CONFIDENT_SURPRISED = r"(!\?|\?!|!!)|\b(whoa|wow|no way|seriously|really\?|get out)\b"
_CONFIDENT_SMILE = r"\b(haha|lol|glad|love|awesome|great|amazing|cute|fun|cheers)\b|;\)|:\)|😊|😉"

RULES: Dict[str, List[Rule]] = {
    # Shy persona: temper first, then tears, then shock, then joy
    "arisa": [
        _rule(Expression.ANGRY, _ANGRY),
        _rule(Expression.SAD, _SAD),
        _rule(Expression.SURPRISED, _SURPRISED),
        _rule(Expression.SMILE, _SMILE),
    ],
    # Confident persona: sadness outranks annoyance
    "alex": [
        _rule(Expression.SAD, _CONFIDENT_SAD),
        _rule(Expression.ANGRY, _CONFIDENT_ANGRY),
        _rule(Expression.SURPRISED, _CONFIDENT_SURPRISED),
        _rule(Expression.SMILE, _CONFIDENT_SMILE),
    ],
}

DEFAULT_RULES = RULES["arisa"]

def classify(text: Optional[str], persona: Optional[str] = None) -> Expression:
    """Map reply text to an expression. First matching rule wins."""
    if not text:
        return Expression.NORMAL
    for expression, pattern in RULES.get(persona or "", DEFAULT_RULES):
        if pattern.search(text):
            return expression
    return Expression.NORMAL
