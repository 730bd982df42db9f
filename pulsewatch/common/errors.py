"""
Exception taxonomy shared by every pipeline stage.

HTTP mapping (see main.py):
- ValidationError -> 400
- NotFoundError -> 404
- StoreError / ExternalServiceError / anything else -> 500
"""


class PipelineError(Exception):
    """Base class for pipeline errors."""
    pass


class ValidationError(PipelineError):
    """Required input missing or malformed. Raised before any side effect."""
    pass


class NotFoundError(PipelineError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class StoreError(PipelineError):
    """Persistence failure."""
    pass


class ExternalServiceError(PipelineError):
    """A capability (AI, fetch, search, mail, storage) failed.

    `transient` marks failures worth retrying (timeouts, 429, 5xx,
    connection resets). Permanent failures (4xx, bad credentials,
    unparseable output) are not retried.
    """

    def __init__(self, service: str, message: str, transient: bool = False):
        self.service = service
        self.transient = transient
        super().__init__(f"{service}: {message}")
