"""Rule-based intent classification for support questions.

Classifies a question into one of:
  - account_password : password resets, login problems
  - network_vpn      : VPN and remote connectivity
  - procurement      : purchasing, orders, quotes, vendor approvals
  - email_issue      : mail client and delivery problems
  - unknown          : nothing matched

Rules are evaluated in table order and the first match wins, so a question
mentioning both a password and VPN is an ``account_password`` question.
Keyword families are bilingual (English and Japanese).
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

from .models import IntentResult

UNKNOWN_INTENT = "unknown"


@dataclass(frozen=True)
class IntentRule:
    intent: str
    pattern: Pattern[str]
    reason: str


def _keywords(*words: str) -> Pattern[str]:
    return re.compile("(" + "|".join(re.escape(w) for w in words) + ")", re.IGNORECASE)


INTENT_RULES: Tuple[IntentRule, ...] = (
    IntentRule(
        intent="account_password",
        pattern=_keywords("password", "パスワード", "ログイン", "reset", "リセット"),
        reason="password/login keywords",
    ),
    IntentRule(
        intent="network_vpn",
        pattern=_keywords("vpn", "在宅", "リモート", "接続", "つながら"),
        reason="vpn/connectivity keywords",
    ),
    IntentRule(
        intent="procurement",
        pattern=_keywords(
            "調達", "購買", "発注", "po", "注文書", "見積", "検収",
            "請求", "取引先", "ベンダ", "サプライヤ", "承認フロー", "申請",
        ),
        reason="procurement keywords",
    ),
    IntentRule(
        intent="email_issue",
        pattern=_keywords("mail", "メール", "outlook", "送信", "受信", "smtp"),
        reason="email keywords",
    ),
)


def classify_intent(text: Optional[str]) -> IntentResult:
    """Return the first matching intent rule for ``text``.

    Example:
        >>> classify_intent("VPN drops every hour").intent
        'network_vpn'
    """
    lowered = (text or "").lower()
    for rule in INTENT_RULES:
        if rule.pattern.search(lowered):
            return IntentResult(intent=rule.intent, reason=rule.reason)
    return IntentResult(intent=UNKNOWN_INTENT, reason="no strong keywords")
