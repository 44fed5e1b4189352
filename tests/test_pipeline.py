"""Tests for the embedded support pipeline."""

import pytest

from supportdesk.answer import NO_MATCH_ANSWER, AnswerComposer
from supportdesk.pipeline import SupportPipeline
from tests.conftest import read_logs


@pytest.mark.asyncio
async def test_empty_knowledge_base(empty_pipeline):
    response = await empty_pipeline.ask("Anything at all")

    assert response.answer == NO_MATCH_ANSWER
    assert response.confidence == 0
    assert response.citations == []
    assert response.needs_human is True
    assert response.trace["judge"]["reason"] == "low_confidence"
    assert response.trace["rag"] == {"confidence": 0, "top": []}


@pytest.mark.asyncio
async def test_vpn_question_is_deflected(pipeline, data_dir):
    response = await pipeline.ask("vpn is not working")

    assert response.intent == "network_vpn"
    assert response.confidence == 0.35
    assert response.needs_human is False
    assert response.trace["judge"] == {"needsHuman": False, "reason": "ok"}
    assert response.trace["intent"]["intent"] == "network_vpn"
    assert [c.to_json_dict() for c in response.citations] == [
        {"id": "F1", "title": "VPN setup", "score": 0.35, "source": "knowledge"}
    ]

    [record] = read_logs(data_dir)
    assert record["question"] == "vpn is not working"
    assert record["confidence"] == pytest.approx(0.35)
    assert record["usedGenerativeEnhancer"] is False
    assert "channel" not in record


@pytest.mark.asyncio
async def test_similar_items_exclude_current_question(pipeline):
    first = await pipeline.ask("vpn is not working")
    assert [item["source"] for item in first.similar_items] == ["knowledge"]

    second = await pipeline.ask("vpn is not working")
    top = second.similar_items[0]
    assert top["source"] == "history"
    assert top["score"] == 1.0
    assert len(second.similar_items) == 2


@pytest.mark.asyncio
async def test_channel_is_recorded(config, data_dir):
    remote = SupportPipeline(config, composer=AnswerComposer(), channel="mcp")
    await remote.ask("vpn is not working")
    assert read_logs(data_dir)[0]["channel"] == "mcp"


@pytest.mark.asyncio
async def test_response_shape(pipeline):
    data = (await pipeline.ask("vpn is not working")).to_json_dict()
    assert set(data) == {"answer", "intent", "confidence", "needsHuman", "citations", "similarItems", "trace"}
    assert set(data["trace"]) == {"intent", "rag", "judge"}


@pytest.mark.asyncio
async def test_search_faq_does_not_log(pipeline, data_dir):
    result = await pipeline.search_faq("my vpn is down", 5)
    assert result.confidence == 0.35
    assert result.items[0].id == "F1"
    assert not (data_dir / "logs.json").exists()


@pytest.mark.asyncio
async def test_metrics_follow_log(pipeline, empty_pipeline):
    await pipeline.ask("vpn is not working")
    await pipeline.ask("who won the game")

    metrics = await pipeline.metrics()
    assert metrics.total == 2
    assert metrics.deflected == 1
    assert metrics.by_intent == {"network_vpn": 1, "unknown": 1}
    assert (await empty_pipeline.metrics()).total == 0


@pytest.mark.asyncio
async def test_faq_overview(pipeline):
    overview = await pipeline.faq_overview()
    assert overview["count"] == 1
    assert overview["ids"] == ["F1"]
    assert overview["sample"][0]["title"] == "VPN setup"


@pytest.mark.asyncio
async def test_enhancer_does_not_change_decision(pipeline, data_dir):
    class EscalatingEnhancer:
        async def rephrase(self, question, intent, best):
            return "Please escalate this to the responsible team."

    baseline = await pipeline.ask("vpn is not working")
    pipeline.composer = AnswerComposer(EscalatingEnhancer())
    enhanced = await pipeline.ask("vpn is not working")

    assert enhanced.answer == "Please escalate this to the responsible team."
    assert enhanced.confidence == baseline.confidence == 0.35
    assert enhanced.intent == baseline.intent == "network_vpn"
    assert enhanced.needs_human is baseline.needs_human is False
    assert enhanced.trace["judge"] == baseline.trace["judge"] == {"needsHuman": False, "reason": "ok"}
    assert [r["usedGenerativeEnhancer"] for r in read_logs(data_dir)] == [False, True]
    assert [r["needsHuman"] for r in read_logs(data_dir)] == [False, False]
