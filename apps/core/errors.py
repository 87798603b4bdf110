"""
Error taxonomy for the knn workflow.

Load, provisioning and bulk errors are fatal and stop the run. QueryFailure is
reported per query and the loop moves on.
"""
from typing import Optional


class KnnWorkflowError(Exception):
    """Base class; carries the offending identifier and a readable cause."""

    def __init__(self, identifier: Optional[str], reason: str):
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"{identifier}: {reason}" if identifier else reason)


class SourceNotFound(KnnWorkflowError):
    pass


class MalformedEmbedding(KnnWorkflowError):
    def __init__(self, identifier: Optional[str], reason: str, line: Optional[int] = None):
        self.line = line
        where = f"line {line}: " if line is not None else ""
        super().__init__(identifier, where + reason)


class MalformedSource(KnnWorkflowError):
    pass


class SchemaInvalid(KnnWorkflowError):
    pass


class VectorDimensionMismatch(SchemaInvalid):
    def __init__(self, identifier: Optional[str], expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(identifier, f"vector has {actual} dimensions, index expects {expected}")


class ProvisioningError(KnnWorkflowError):
    pass


class IndexAlreadyExists(ProvisioningError):
    pass


class MissingEmbedding(KnnWorkflowError):
    def __init__(self, identifier: str):
        super().__init__(identifier, "no embedding for document")


class BulkItemFailure(KnnWorkflowError):
    pass


class QueryFailure(KnnWorkflowError):
    pass


class WorkflowCancelled(KnnWorkflowError):
    pass
