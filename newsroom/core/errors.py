"""
Error taxonomy shared by every pipeline stage.

Services raise these; API routes translate them into HTTP responses and
the orchestrator records them per item without aborting the run.
"""


class PipelineError(Exception):
    """Base class for pipeline errors. `status_code` is the HTTP mapping."""

    status_code = 500
    kind = "pipeline_error"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message, **self.context}


class InvalidInput(PipelineError):
    """Missing or malformed request fields."""

    status_code = 400
    kind = "invalid_input"


class NotFound(PipelineError):
    """Referenced entity does not exist."""

    status_code = 404
    kind = "not_found"


class PreconditionFailed(PipelineError):
    """Entity exists but is not in the required state or above the threshold."""

    status_code = 409
    kind = "precondition_failed"


class RunInProgress(PreconditionFailed):
    """Another run of the same mode holds the lease."""

    kind = "run_in_progress"


class UpstreamFailure(PipelineError):
    """A remote stage, feed or the text generation service failed."""

    status_code = 502
    kind = "upstream_failure"


class StorageFailure(PipelineError):
    """The relational store or the key-value ledger failed."""

    status_code = 500
    kind = "storage_failure"
