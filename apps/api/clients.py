from functools import lru_cache

from elasticsearch import Elasticsearch

from apps.core.settings import WorkflowSettings


@lru_cache(maxsize=1)
def get_settings() -> WorkflowSettings:
    return WorkflowSettings.from_env()


@lru_cache(maxsize=1)
def es_client() -> Elasticsearch:
    settings = get_settings()
    return Elasticsearch(settings.es_url, request_timeout=settings.request_timeout)
