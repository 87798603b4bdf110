from typing import Any, Dict

import backoff
from elasticsearch import ConnectionError as ESConnectionError
from elasticsearch import Elasticsearch

from .logs import get_logger
from .settings import WorkflowSettings

logger = get_logger("knn.es")


@backoff.on_exception(backoff.expo, ESConnectionError, max_time=60)
def get_es(settings: WorkflowSettings) -> Elasticsearch:
    es = Elasticsearch(settings.es_url, request_timeout=settings.request_timeout)
    es.info()  # ping/verify
    logger.info("connected", extra={"url": settings.es_url})
    return es


def body_of(resp: Any) -> Dict[str, Any]:
    """Plain dict from an ObjectApiResponse (or a dict already)."""
    return resp.body if hasattr(resp, "body") else resp
