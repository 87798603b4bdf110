# Runs against a real cluster: ES_IT_URL=http://localhost:9200 pytest tests/integration
import os
import uuid

import pytest

from apps.core.settings import WorkflowSettings
from apps.indexer.provision import delete_index, recreate_index, schema_from_settings
from apps.indexer.worker import bulk_load
from apps.ingest.models import EmbeddingRecord, SourceDocument
from apps.query.runner import build_query, run_query

ES_URL = os.getenv("ES_IT_URL")
pytestmark = pytest.mark.skipif(not ES_URL, reason="ES_IT_URL not set")


@pytest.fixture
def live():
    from apps.core.es import get_es
    settings = WorkflowSettings(es_url=ES_URL, index_name=f"knn-it-{uuid.uuid4().hex[:8]}", refresh=True)
    es = get_es(settings)
    yield es, settings
    delete_index(es, settings.index_name)


def test_identical_vector_is_the_top_hit(live):
    es, settings = live
    vector = [round(0.1 * (i % 10 + 1), 1) for i in range(settings.dimensions)]
    store = {"input-1": EmbeddingRecord(id="input-1", vector=vector)}
    recreate_index(es, settings.index_name, schema_from_settings(settings))
    bulk_load(es, settings.index_name, [SourceDocument(id="input-1", text="banana muffin")], store, refresh=True)

    hits = run_query(es, settings.index_name, build_query(vector, settings, k=1, num_candidates=1))

    assert [h.document_id for h in hits] == ["input-1"]
    assert hits[0].score == pytest.approx(1.0, abs=1e-3)
