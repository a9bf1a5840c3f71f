"""Error taxonomy for the ingestion and classification pipeline.

Only the synchronous write path may fail a caller's request. Everything
downstream of a durable event degrades to missing or approximate data.
"""


class AnalyticsError(Exception):
    """Base exception for analytics operations."""

    pass


class ValidationError(AnalyticsError):
    """Malformed payload or unknown event type (client error)."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(message)


class ConflictError(AnalyticsError):
    """An event with the same key was already recorded."""

    def __init__(self, message: str, key: str):
        self.key = key
        super().__init__(message)


class PersistenceError(AnalyticsError):
    """Backing store read or write failed."""

    pass


class SideEffectError(AnalyticsError):
    """Detached side-effect (enqueue, aggregate update) failed."""

    def __init__(self, message: str, job: str = "unknown"):
        self.job = job
        super().__init__(f"[{job}] {message}")


class ClassificationError(AnalyticsError):
    """Processing a single queued item failed; it stays queued."""

    def __init__(self, message: str, query_id: str):
        self.query_id = query_id
        super().__init__(f"[{query_id}] {message}")


class ModelCallError(AnalyticsError):
    """Quality model timed out or returned an unusable response."""

    def __init__(self, message: str, provider: str = "gemini"):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")
