"""hybrid_store error types."""


class HybridStoreError(Exception):
    """Base class for hybrid store errors."""


class RemoteStoreError(HybridStoreError):
    """Raised when an operation against the remote store fails.

    Covers network, authentication and IO failures. Adapters raise it;
    the write queue and sync engine catch and log it.
    """


class SyncReadFailure(RemoteStoreError):
    """Raised when a bulk read of the remote store fails.

    The previous in-memory snapshot is kept.
    """


class JobApplyFailure(RemoteStoreError):
    """Raised when a queued job could not be applied remotely.

    Attributes:
        job: The job that failed.
    """

    def __init__(self, job, cause: Exception) -> None:
        self.job = job
        self.cause = cause
        super().__init__(
            f"{job.kind.value} on {job.collection} failed: {cause}"
        )


class CollectionNotFound(RemoteStoreError):
    """Raised when a remote collection is still missing after ensure."""


class UnknownCollectionError(HybridStoreError, KeyError):
    """Raised when a caller names a collection that was never configured."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown collection: {name}")

    def __str__(self) -> str:
        return self.args[0]
