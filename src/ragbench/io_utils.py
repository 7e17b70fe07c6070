from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
from pathlib import Path

from .schema import QueryRecord, RelevanceJudgment

logger = logging.getLogger(__name__)

RUNS_INDEX = "index.json"


@dataclass(slots=True)
class EvaluationData:
    """Queries, qrels and reference answers keyed by query id."""

    queries: dict[str, QueryRecord]
    qrels: dict[str, RelevanceJudgment]
    answers: dict[str, str] = field(default_factory=dict)


def _load_json(path: str | Path):
    with Path(path).open("r", encoding="utf-8") as file_handle:
        return json.load(file_handle)


def _write_json(path: str | Path, payload) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("w", encoding="utf-8") as file_handle:
        json.dump(payload, file_handle, indent=2)


def dataset_dir(data_dir: str | Path, sample: bool = False) -> Path:
    return Path(data_dir) / "sample" if sample else Path(data_dir)


def load_evaluation_data(data_dir: str | Path = "data", sample: bool = False) -> EvaluationData:
    """Load `queries.json`, `qrels.json` and `answers.json` from the dataset directory."""
    base = dataset_dir(data_dir, sample)
    raw_queries = _load_json(base / "queries.json")
    raw_qrels = _load_json(base / "qrels.json")
    answers_path = base / "answers.json"
    raw_answers = _load_json(answers_path) if answers_path.exists() else {}

    queries = {
        query_id: QueryRecord(
            query_id=query_id,
            query=record["query"],
            query_type=record.get("type"),
            query_source=record.get("source"),
        )
        for query_id, record in raw_queries.items()
    }
    qrels = {
        query_id: RelevanceJudgment(doc_id=record["doc_id"], section_id=record["section_id"])
        for query_id, record in raw_qrels.items()
        if record and record.get("doc_id") is not None
    }
    return EvaluationData(queries=queries, qrels=qrels, answers=raw_answers)


def load_document_ids(data_dir: str | Path = "data", sample: bool = False) -> list[str]:
    """Resolve which corpus documents to ingest.

    The sample subset lists them in `sample/doc_ids.json`; the full dataset
    uses every distinct `doc_id` referenced by `qrels.json`.
    """
    if sample:
        sample_path = dataset_dir(data_dir, sample=True) / "doc_ids.json"
        if not sample_path.exists():
            raise FileNotFoundError(f"Sample subset not found at {sample_path}")
        return list(_load_json(sample_path))

    qrels_path = Path(data_dir) / "qrels.json"
    if not qrels_path.exists():
        raise FileNotFoundError(f"qrels.json not found at {qrels_path}")

    doc_ids: dict[str, None] = {}
    for record in _load_json(qrels_path).values():
        if record and record.get("doc_id"):
            doc_ids.setdefault(record["doc_id"], None)
    return list(doc_ids)


def load_corpus_document(corpus_dir: str | Path, doc_id: str) -> dict | None:
    path = Path(corpus_dir) / f"{doc_id}.json"
    if not path.exists():
        return None
    return _load_json(path)


def save_ingestion_metadata(metadata: dict, data_dir: str | Path = "data") -> Path:
    path = Path(data_dir) / "ingestion_metadata.json"
    _write_json(path, metadata)
    return path


def default_run_name(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return "run_" + stamp.replace(":", "-").replace(".", "-")


def save_run(report: dict, runs_dir: str | Path = "runs") -> Path:
    """Persist a run report and append its summary to the runs index.

    Returns:
        Path of the written run file.
    """
    runs_path = Path(runs_dir)
    run_file = runs_path / f"{report['run_name']}.json"
    _write_json(run_file, report)

    index_path = runs_path / RUNS_INDEX
    index = _load_json(index_path) if index_path.exists() else []
    index.append(
        {
            "name": report["run_name"],
            "timestamp": report["timestamp"],
            "mode": report["mode"],
            "total_queries": report["total_queries"],
            "aggregate_metrics": report["aggregate_metrics"],
        }
    )
    _write_json(index_path, index)
    logger.info("Saved run %s to %s", report["run_name"], run_file)
    return run_file


def list_runs(runs_dir: str | Path = "runs") -> list[dict]:
    """Return run index entries, newest first."""
    index_path = Path(runs_dir) / RUNS_INDEX
    if not index_path.exists():
        return []
    return sorted(_load_json(index_path), key=lambda entry: entry["timestamp"], reverse=True)


def load_run(name: str, runs_dir: str | Path = "runs") -> dict | None:
    path = Path(runs_dir) / f"{name}.json"
    if not path.exists():
        return None
    return _load_json(path)


def delete_run(name: str, runs_dir: str | Path = "runs") -> bool:
    """Remove a run file and its index entry; returns False when unknown."""
    runs_path = Path(runs_dir)
    run_file = runs_path / f"{name}.json"
    if not run_file.exists():
        return False
    run_file.unlink()

    index_path = runs_path / RUNS_INDEX
    if index_path.exists():
        _write_json(index_path, [entry for entry in _load_json(index_path) if entry["name"] != name])
    logger.info("Deleted run %s", name)
    return True


def compare_runs(first: str, second: str, runs_dir: str | Path = "runs") -> dict | None:
    """Side-by-side aggregate metrics of two runs with `second - first` deltas."""
    left = load_run(first, runs_dir)
    right = load_run(second, runs_dir)
    if left is None or right is None:
        return None

    left_metrics = left["aggregate_metrics"]
    right_metrics = right["aggregate_metrics"]
    shared = [key for key in left_metrics if key in right_metrics]
    return {
        "runs": [first, second],
        "metrics": {
            key: {
                first: left_metrics[key],
                second: right_metrics[key],
                "delta": right_metrics[key] - left_metrics[key],
            }
            for key in shared
        },
    }


def create_sample_subset(data_dir: str | Path = "data", sample_size: int = 100) -> Path:
    """Write the first `sample_size` queries and their qrels to `data/sample/`.

    The sample also lists every document its qrels reference in
    `doc_ids.json`, so sample ingestion indexes only what sample evaluation
    can hit.

    Returns:
        The sample directory.
    """
    base = Path(data_dir)
    queries = _load_json(base / "queries.json")
    qrels = _load_json(base / "qrels.json")
    answers_path = base / "answers.json"
    answers = _load_json(answers_path) if answers_path.exists() else {}

    sample_ids = list(queries)[:sample_size]
    doc_ids: dict[str, None] = {}
    for query_id in sample_ids:
        record = qrels.get(query_id)
        if record and record.get("doc_id"):
            doc_ids.setdefault(record["doc_id"], None)

    sample_dir = dataset_dir(base, sample=True)
    _write_json(sample_dir / "queries.json", {qid: queries[qid] for qid in sample_ids})
    _write_json(sample_dir / "qrels.json", {qid: qrels[qid] for qid in sample_ids if qid in qrels})
    _write_json(sample_dir / "answers.json", {qid: answers[qid] for qid in sample_ids if qid in answers})
    _write_json(sample_dir / "doc_ids.json", list(doc_ids))
    logger.info("Sample subset: %d queries, %d documents", len(sample_ids), len(doc_ids))
    return sample_dir
