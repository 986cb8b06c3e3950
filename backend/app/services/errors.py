"""Error types raised by the folder, sharing and file services.

Routes translate these into HTTP responses; infrastructure errors carry a
human-readable "Failed to <operation>: <cause>" message and never the raw
driver exception as their payload.
"""


class DriveError(Exception):
    """Base class for service-level errors."""
    pass


class NotFoundError(DriveError):
    """A referenced folder or file does not exist."""
    pass


class InvalidShareDurationError(DriveError):
    """Share duration must be a positive number of hours."""
    pass


class ShareExpiredError(DriveError):
    """The folder share is no longer active (expired or revoked)."""
    pass


class RootFolderConflict(DriveError):
    """Another request created the principal's root folder first.

    Raised when the one-root-per-owner unique index rejects an insert. It is
    recovered inside FolderService.create_root_folder and never reaches callers.
    """
    pass


class ExternalStoreError(DriveError):
    """A durable-store or blob-store call failed for infrastructure reasons."""
    pass


class BlobStoreError(ExternalStoreError):
    pass


class DatabaseError(ExternalStoreError):
    pass


def describe(operation: str, exc: BaseException) -> str:
    """Build a "Failed to <operation>: <cause>" message.

    Some exceptions produce an empty str(e); fall back to the class name.
    """
    cause = str(exc).strip() or type(exc).__name__
    return f"Failed to {operation}: {cause}"
