"""
load embeddings -> provision index -> bulk create -> knn query loop.

Stages run in order; a failure in loading, provisioning or bulk indexing stops
the run (exit 1) and leaves any partially created index in place for
inspection. Query failures are reported per query. A stop signal received
before provisioning or bulk indexing aborts the run before that stage starts.

By default documents are not force-refreshed after the bulk request, so the
first queries may see only part of the batch until the index refreshes.
Pass --refresh (or KNN_REFRESH=1) to wait for the refresh instead.

Usage:
  python -m apps.pipeline.run --embeddings data/embeddings.tsv \
      --inputs data/inputs.tsv --queries data/queries.tsv
"""
import argparse
import os
import signal
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from elasticsearch import ApiError, Elasticsearch, TransportError
from pydantic import ValidationError

from apps.core.errors import KnnWorkflowError, WorkflowCancelled
from apps.core.es import get_es
from apps.core.logs import get_logger
from apps.core.metrics import start_metrics
from apps.core.settings import WorkflowSettings
from apps.indexer.provision import recreate_index, schema_from_settings
from apps.indexer.worker import bulk_load
from apps.ingest.embeddings import load_embeddings, load_texts
from apps.query.models import QueryOutcome
from apps.query.runner import render, run_queries

logger = get_logger("knn.pipeline")

DATA_DIR = Path(os.getenv("KNN_DATA_DIR", "data"))

_running = True
def _graceful(*_):  # ctrl+c, docker stop
    global _running
    _running = False
    print("[pipeline] shutdown signal", flush=True)


def _checkpoint(should_stop: Optional[Callable[[], bool]], stage: str) -> None:
    if should_stop is not None and should_stop():
        raise WorkflowCancelled(stage, "stop requested before stage started")


def run(
    es: Elasticsearch,
    settings: WorkflowSettings,
    embeddings_path,
    inputs_path,
    queries_path,
    should_stop: Optional[Callable[[], bool]] = None,
) -> List[QueryOutcome]:
    store = load_embeddings(embeddings_path, dimensions=settings.dimensions)
    docs = load_texts(inputs_path)
    queries = load_texts(queries_path)

    _checkpoint(should_stop, "provision")
    schema = schema_from_settings(settings)
    recreate_index(
        es,
        settings.index_name,
        schema,
        clean=settings.recreate,
        shards=settings.shards,
        replicas=settings.replicas,
        request_timeout=settings.request_timeout,
    )
    _checkpoint(should_stop, "bulk")
    bulk_load(
        es,
        settings.index_name,
        docs,
        store,
        refresh=settings.refresh,
        request_timeout=settings.request_timeout,
    )
    return run_queries(es, store, queries, settings, should_stop=should_stop)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Index precomputed embeddings and run knn queries.")
    p.add_argument("--embeddings", default=os.getenv("KNN_EMBEDDINGS_FILE", str(DATA_DIR / "embeddings.tsv")))
    p.add_argument("--inputs", default=os.getenv("KNN_INPUTS_FILE", str(DATA_DIR / "inputs.tsv")))
    p.add_argument("--queries", default=os.getenv("KNN_QUERIES_FILE", str(DATA_DIR / "queries.tsv")))
    p.add_argument("--index")
    p.add_argument("--k", type=int)
    p.add_argument("--num-candidates", type=int)
    p.add_argument("--workers", type=int)
    p.add_argument("--refresh", action="store_true", default=None)
    p.add_argument("--no-recreate", dest="recreate", action="store_false", default=None)
    return p.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    signal.signal(signal.SIGINT, _graceful)
    signal.signal(signal.SIGTERM, _graceful)

    try:
        settings = WorkflowSettings.from_env(
            index_name=args.index,
            k=args.k,
            num_candidates=args.num_candidates,
            query_workers=args.workers,
            refresh=args.refresh,
            recreate=args.recreate,
        )
    except (ValidationError, ValueError) as e:
        print("[pipeline] FATAL: bad configuration:", e, file=sys.stderr, flush=True)
        return 1

    print(f"[pipeline] starting; es={settings.es_url} index={settings.index_name} "
          f"dims={settings.dimensions} k={settings.k} num_candidates={settings.num_candidates}", flush=True)
    start_metrics(settings.metrics_port)

    try:
        es = get_es(settings)
        outcomes = run(es, settings, args.embeddings, args.inputs, args.queries,
                       should_stop=lambda: not _running)
    except KnnWorkflowError as e:
        logger.error("workflow aborted", extra={"error": type(e).__name__, "identifier": e.identifier})
        print(f"[pipeline] FATAL: {type(e).__name__}: {e}", file=sys.stderr, flush=True)
        return 1
    except (ApiError, TransportError) as e:
        print("[pipeline] FATAL:", repr(e), file=sys.stderr, flush=True)
        return 1

    for outcome in outcomes:
        print(render(outcome), flush=True)
    failed = sum(1 for o in outcomes if not o.ok)
    print(f"[pipeline] queries={len(outcomes)} failed={failed}", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
