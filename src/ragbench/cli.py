from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from functools import partial

from .embeddings import build_embedder
from .errors import RagBenchError
from .io_utils import (
    compare_runs,
    create_sample_subset,
    default_run_name,
    delete_run,
    list_runs,
    load_corpus_document,
    load_document_ids,
    load_evaluation_data,
    load_run,
    save_ingestion_metadata,
    save_run,
)
from .pipeline import (
    EvaluationConfig,
    IngestionConfig,
    RunReport,
    build_run_report,
    evaluate_queries,
    ingest_corpus,
)
from .settings import load_settings
from .tracing import configure_tracing, get_tracer
from .vector_store import build_chroma_collection, collection_searcher

logger = logging.getLogger("ragbench")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("chromadb").setLevel(logging.WARNING)


def _pct(value: float) -> str:
    return f"{value * 100:.2f}%"


def format_summary(report: RunReport) -> str:
    """Render aggregate and grouped metrics as console text."""
    rule = "=" * 60
    agg = report.aggregate
    lines = [
        rule,
        "AGGREGATE METRICS",
        rule,
        f"MRR (exact):      {_pct(agg.mrr)}",
        f"MRR (document):   {_pct(agg.doc_mrr)}",
        f"nDCG:             {_pct(agg.ndcg)}",
    ]
    for k, value in agg.recall_at.items():
        lines.append(f"{f'Recall@{k}:':<18}{_pct(value)}")
    for k, value in agg.precision_at.items():
        lines.append(f"{f'Precision@{k}:':<18}{_pct(value)}")

    recall_key = 5 if 5 in agg.recall_at else max(agg.recall_at, default=None)
    for heading, groups in (("BY QUERY TYPE", report.by_type), ("BY QUERY SOURCE", report.by_source)):
        lines += ["", "-" * 60, heading, "-" * 60]
        for name, metrics in groups.items():
            line = f"  MRR: {_pct(metrics.mrr)}"
            if recall_key is not None:
                line += f" | Recall@{recall_key}: {_pct(metrics.recall_at[recall_key])}"
            lines += [f"{name} ({metrics.count} queries):", line]
    return "\n".join(lines)


def _build_tracer(args: argparse.Namespace, name: str):
    if not args.trace_endpoint:
        return None
    configure_tracing(endpoint=args.trace_endpoint)
    return get_tracer(name)


def run_ingest(args: argparse.Namespace) -> int:
    embedding_settings, store_settings, paths = load_settings()
    mode = "sample" if args.sample else "full"
    logger.info(
        "Ingesting (%s) with %s / %s (%d dims)",
        mode,
        embedding_settings.provider.value,
        embedding_settings.model,
        embedding_settings.dimensions,
    )

    doc_ids = load_document_ids(paths.data_dir, sample=args.sample)
    logger.info("Documents to process: %d", len(doc_ids))

    collection = build_chroma_collection(store_settings.collection_name, store_settings.persist_dir)
    config = IngestionConfig(
        batch_size=args.batch_size,
        concurrency=args.concurrency,
        embed_concurrency=args.embed_concurrency,
    )
    summary = asyncio.run(
        ingest_corpus(
            doc_ids,
            partial(load_corpus_document, paths.corpus_dir),
            build_embedder(embedding_settings),
            collection,
            config=config,
            tracer=_build_tracer(args, "ragbench.ingest"),
        )
    )

    metadata = summary.to_metadata(
        mode=mode,
        collection_name=store_settings.collection_name,
        vector_dimensions=embedding_settings.dimensions,
    )
    path = save_ingestion_metadata(metadata, paths.data_dir)
    print(f"Documents processed: {summary.documents_processed}")
    print(f"Documents failed:    {summary.documents_failed}")
    print(f"Chunks indexed:      {summary.total_chunks}")
    print(f"Metadata saved to:   {path}")
    return 0


def run_evaluate(args: argparse.Namespace) -> int:
    embedding_settings, store_settings, paths = load_settings()
    mode = "sample" if args.sample else "full"
    run_name = args.name or default_run_name()
    logger.info("Run %s (%s)", run_name, mode)

    data = load_evaluation_data(paths.data_dir, sample=args.sample)
    logger.info("Queries to evaluate: %d", len(data.queries))

    collection = build_chroma_collection(
        store_settings.collection_name, store_settings.persist_dir, recreate=False
    )
    config = EvaluationConfig(top_k=args.top_k, concurrency=args.concurrency)
    evaluations, failures = asyncio.run(
        evaluate_queries(
            data,
            build_embedder(embedding_settings),
            collection_searcher(collection),
            config=config,
            tracer=_build_tracer(args, "ragbench.evaluate"),
        )
    )
    if not evaluations:
        logger.error("No queries were evaluated; nothing to report")
        return 1

    report = build_run_report(run_name, mode, evaluations, failures)
    print(format_summary(report))
    path = save_run(report.to_dict(config.preview_chars), paths.runs_dir)
    print(f"\nResults saved to: {path}")
    return 0


def run_sample(args: argparse.Namespace) -> int:
    _, _, paths = load_settings()
    sample_dir = create_sample_subset(paths.data_dir, sample_size=args.size)
    print(f"Sample subset written to: {sample_dir}")
    return 0


def run_runs(args: argparse.Namespace) -> int:
    _, _, paths = load_settings()
    if args.action == "list":
        for entry in list_runs(paths.runs_dir):
            mrr = entry["aggregate_metrics"].get("mrr", 0.0)
            print(f"{entry['name']}  {entry['timestamp']}  {entry['mode']}  queries={entry['total_queries']}  mrr={_pct(mrr)}")
        return 0

    if args.action == "show":
        run = load_run(args.names[0], paths.runs_dir)
        if run is None:
            logger.error("Run not found: %s", args.names[0])
            return 1
        print(json.dumps(run, indent=2))
        return 0

    if args.action == "delete":
        if not delete_run(args.names[0], paths.runs_dir):
            logger.error("Run not found: %s", args.names[0])
            return 1
        return 0

    if len(args.names) != 2:
        logger.error("compare needs exactly two run names")
        return 1
    comparison = compare_runs(args.names[0], args.names[1], paths.runs_dir)
    if comparison is None:
        logger.error("One or both runs not found")
        return 1
    print(json.dumps(comparison, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ragbench", description="Benchmark retrieval pipelines.")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="chunk, embed and index the corpus")
    ingest.add_argument("--sample", action="store_true", help="use the sample subset")
    ingest.add_argument("--batch-size", type=int, default=50)
    ingest.add_argument("--concurrency", type=int, default=4, help="documents processed at once")
    ingest.add_argument("--embed-concurrency", type=int, default=8, help="embedding requests in flight")
    ingest.add_argument("--trace-endpoint", default=None, help="OTLP HTTP endpoint for spans")
    ingest.set_defaults(func=run_ingest)

    evaluate = sub.add_parser("evaluate", help="score retrieval against qrels")
    evaluate.add_argument("--sample", action="store_true", help="use the sample subset")
    evaluate.add_argument("--name", default=None, help="run name (default: timestamped)")
    evaluate.add_argument("--top-k", type=int, default=10)
    evaluate.add_argument("--concurrency", type=int, default=4)
    evaluate.add_argument("--trace-endpoint", default=None, help="OTLP HTTP endpoint for spans")
    evaluate.set_defaults(func=run_evaluate)

    sample = sub.add_parser("sample", help="build data/sample from the full dataset")
    sample.add_argument("--size", type=int, default=100, help="number of queries to keep")
    sample.set_defaults(func=run_sample)

    runs = sub.add_parser("runs", help="inspect saved runs")
    runs.add_argument("action", choices=["list", "show", "delete", "compare"])
    runs.add_argument("names", nargs="*")
    runs.set_defaults(func=run_runs)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "runs" and args.action in {"show", "delete"} and len(args.names) != 1:
        parser.error(f"runs {args.action} needs exactly one run name")
    configure_logging(args.verbose)
    try:
        return args.func(args)
    except (RagBenchError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
