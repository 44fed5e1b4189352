"""Shared fixtures: a temporary data directory and pipelines bound to it."""

import json

import pytest

from supportdesk.answer import AnswerComposer
from supportdesk.config import SupportDeskConfig
from supportdesk.pipeline import SupportPipeline

VPN_ENTRY = {
    "id": "F1",
    "title": "VPN setup",
    "tags": ["vpn"],
    "content": "Connect via client X",
}


def write_faq(data_dir, entries):
    (data_dir / "faq.json").write_text(json.dumps(entries, ensure_ascii=False), encoding="utf-8")


def read_logs(data_dir):
    return json.loads((data_dir / "logs.json").read_text(encoding="utf-8"))


@pytest.fixture
def data_dir(tmp_path):
    write_faq(tmp_path, [VPN_ENTRY])
    return tmp_path


@pytest.fixture
def config(data_dir):
    return SupportDeskConfig(data_dir=data_dir)


@pytest.fixture
def pipeline(config):
    # explicit composer so an OPENAI_API_KEY in the environment never reaches the network
    return SupportPipeline(config, composer=AnswerComposer())


@pytest.fixture
def empty_pipeline(tmp_path):
    empty_dir = tmp_path / "empty"
    empty_dir.mkdir()
    return SupportPipeline(SupportDeskConfig(data_dir=empty_dir), composer=AnswerComposer())
