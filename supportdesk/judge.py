"""Human-escalation judge.

Decides whether an answered question still needs a human. The checks run in
a fixed precedence and only the first failing check is reported:

1. ``low_confidence``: retrieval confidence below ``CONFIDENCE_THRESHOLD``
2. ``unknown_intent``: the classifier found no category
3. ``answer_suggests_escalation``: the answer itself tells the user to escalate
4. ``ok``: the interaction counts as deflected
"""

import re

from .intent import UNKNOWN_INTENT
from .models import JudgeResult

CONFIDENCE_THRESHOLD = 0.25

ESCALATION_PATTERN = re.compile(
    r"escalat|responsible (team|party|person)|エスカレーション|担当",
    re.IGNORECASE,
)


def judge(confidence: float, intent: str, answer: str) -> JudgeResult:
    if confidence < CONFIDENCE_THRESHOLD:
        return JudgeResult(needs_human=True, reason="low_confidence")
    if intent == UNKNOWN_INTENT:
        return JudgeResult(needs_human=True, reason="unknown_intent")
    if ESCALATION_PATTERN.search(answer or ""):
        return JudgeResult(needs_human=True, reason="answer_suggests_escalation")
    return JudgeResult(needs_human=False, reason="ok")
