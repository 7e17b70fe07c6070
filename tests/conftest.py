"""Shared pytest fixtures for ragbench unit tests."""
from __future__ import annotations

import json

import pytest

from ragbench.schema import RelevanceJudgment, RetrievedItem


@pytest.fixture()
def truth() -> RelevanceJudgment:
    return RelevanceJudgment(doc_id="A", section_id=5)


@pytest.fixture()
def scenario_results() -> list[RetrievedItem]:
    return [
        RetrievedItem(rank=0, score=0.91, doc_id="A", section_id=2, text="first"),
        RetrievedItem(rank=1, score=0.84, doc_id="A", section_id=5, text="second"),
        RetrievedItem(rank=2, score=0.70, doc_id="B", section_id=1, text="third"),
    ]


@pytest.fixture()
def sample_document() -> dict:
    return {
        "title": "Sparse Attention",
        "abstract": "We study sparse attention.",
        "sections": [
            {"text": "Introduction to the problem."},
            {"text": "   "},
            {"text": "Results are strong.", "tables": {"1": "| a | b |"}},
        ],
    }


@pytest.fixture()
def dataset_dir(tmp_path):
    """Minimal on-disk dataset: three queries, two qrels, one corpus document."""
    (tmp_path / "corpus").mkdir()
    (tmp_path / "sample").mkdir()
    queries = {
        "q1": {"query": "What is sparse attention?", "type": "extractive", "source": "text"},
        "q2": {"query": "How strong are the results?", "type": "abstractive", "source": "text-table"},
        "q3": {"query": "Unjudged question?", "type": "extractive", "source": "text"},
    }
    qrels = {
        "q1": {"doc_id": "D1", "section_id": -1},
        "q2": {"doc_id": "D1", "section_id": 2},
    }
    answers = {"q1": "A way to attend.", "q2": "Strong."}
    (tmp_path / "queries.json").write_text(json.dumps(queries), encoding="utf-8")
    (tmp_path / "qrels.json").write_text(json.dumps(qrels), encoding="utf-8")
    (tmp_path / "answers.json").write_text(json.dumps(answers), encoding="utf-8")
    (tmp_path / "sample" / "doc_ids.json").write_text(json.dumps(["D1"]), encoding="utf-8")
    (tmp_path / "corpus" / "D1.json").write_text(
        json.dumps({"title": "Doc One", "abstract": "Abstract.", "sections": [{"text": "Body."}]}),
        encoding="utf-8",
    )
    return tmp_path
