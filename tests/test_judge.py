"""Tests for the human-escalation judge."""

import pytest

from supportdesk.judge import CONFIDENCE_THRESHOLD, judge


@pytest.mark.parametrize(
    "confidence, intent, answer, needs_human, reason",
    [
        (0.1, "network_vpn", "...", True, "low_confidence"),
        (0.9, "unknown", "no escalation phrase", True, "unknown_intent"),
        (0.9, "email_issue", "please escalate to the responsible team", True, "answer_suggests_escalation"),
        (0.9, "email_issue", "resolved, no action needed", False, "ok"),
    ],
)
def test_judge_precedence(confidence, intent, answer, needs_human, reason):
    result = judge(confidence, intent, answer)
    assert result.needs_human is needs_human
    assert result.reason == reason


def test_low_confidence_wins_over_escalation_phrase():
    result = judge(0.0, "unknown", "Please escalate this")
    assert result.reason == "low_confidence"


def test_threshold_is_inclusive():
    assert judge(CONFIDENCE_THRESHOLD, "network_vpn", "Restart the client").reason == "ok"


@pytest.mark.parametrize(
    "answer",
    ["ESCALATION required", "Ask the responsible person", "担当部署に連絡してください", "エスカレーションしてください"],
)
def test_escalation_phrases(answer):
    assert judge(0.9, "email_issue", answer).reason == "answer_suggests_escalation"


def test_judge_result_serializes_camel_case():
    assert judge(0.9, "email_issue", "done").to_json_dict() == {"needsHuman": False, "reason": "ok"}
