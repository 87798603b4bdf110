"""
Index provisioning.

Deletion is modelled as a tri-state: DELETED, ABSENT (the engine said 404,
which is fine for a clean-slate delete) or an error, which is the only case
raised to the caller. Creation blocks until the engine acknowledges it so the
bulk load never races index creation.
"""
from enum import Enum
from typing import Any, Dict

from elasticsearch import ApiError, BadRequestError, Elasticsearch, NotFoundError, TransportError

from apps.core.errors import IndexAlreadyExists, ProvisioningError, SchemaInvalid
from apps.core.es import body_of
from apps.core.logs import get_logger
from apps.core.settings import WorkflowSettings
from .mappings import IndexSchema, index_body

logger = get_logger("knn.indexer")


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    ABSENT = "absent"


def _error_type(exc: ApiError) -> str:
    body = exc.body if isinstance(exc.body, dict) else {}
    err = body.get("error")
    if isinstance(err, dict):
        return err.get("type") or ""
    return str(err or "")


def _reason(exc: Exception) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("reason") or repr(exc)
    return repr(exc)


def schema_from_settings(settings: WorkflowSettings) -> IndexSchema:
    return IndexSchema.build(
        dimensions=settings.dimensions,
        similarity=settings.similarity,
        max_dimensions=settings.max_dimensions,
        vector_field=settings.vector_field,
    )


def delete_index(es: Elasticsearch, name: str, request_timeout: float = 30.0) -> DeleteOutcome:
    try:
        es.options(request_timeout=request_timeout).indices.delete(index=name)
    except NotFoundError:
        logger.info("index absent, nothing to delete", extra={"index": name})
        return DeleteOutcome.ABSENT
    except (ApiError, TransportError) as e:
        raise ProvisioningError(name, f"delete failed: {_reason(e)}") from e
    logger.info("deleted index", extra={"index": name})
    return DeleteOutcome.DELETED


def create_index(
    es: Elasticsearch,
    name: str,
    schema: IndexSchema,
    shards: int = 1,
    replicas: int = 0,
    request_timeout: float = 30.0,
) -> Dict[str, Any]:
    try:
        resp = es.options(request_timeout=request_timeout).indices.create(
            index=name, **index_body(schema, shards=shards, replicas=replicas)
        )
    except BadRequestError as e:
        if _error_type(e) == "resource_already_exists_exception":
            raise IndexAlreadyExists(name, "index already exists") from e
        raise SchemaInvalid(name, _reason(e)) from e
    except (ApiError, TransportError) as e:
        raise ProvisioningError(name, f"create failed: {_reason(e)}") from e

    body = body_of(resp)
    if not body.get("acknowledged"):
        raise ProvisioningError(name, "index creation was not acknowledged")
    logger.info(
        "created index",
        extra={"index": name, "dims": schema.dimensions, "similarity": schema.vector.similarity.value},
    )
    return body


def recreate_index(
    es: Elasticsearch,
    name: str,
    schema: IndexSchema,
    clean: bool = True,
    shards: int = 1,
    replicas: int = 0,
    request_timeout: float = 30.0,
) -> Dict[str, Any]:
    """Optionally drop any index of the same name, then create it."""
    if clean:
        delete_index(es, name, request_timeout=request_timeout)
    return create_index(es, name, schema, shards=shards, replicas=replicas, request_timeout=request_timeout)
