"""Error taxonomy shared by every blobnet component."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .receipts import Failure


class BlobnetError(Exception):
    """Base class for all blobnet errors."""

    #: Name reported in a receipt when the error crosses a service boundary.
    failure_name: str = "BlobnetError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class AuthorizationError(BlobnetError):
    """Proof chain invalid or ability not granted. Never retried."""

    failure_name = "Unauthorized"


class IntegrityError(BlobnetError):
    """Digest of received bytes does not match the expected digest."""

    failure_name = "IntegrityError"


class NotYetConvergedError(BlobnetError):
    """A query stayed empty for the whole retry budget."""

    failure_name = "NotYetConverged"

    def __init__(self, message: str = "", attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class TransportError(BlobnetError):
    """A collaborator was unreachable or answered with a non-success status."""

    failure_name = "TransportError"

    def __init__(self, message: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StructuredFailureError(BlobnetError):
    """Raised when a caller unwraps a receipt that carries a failure."""

    failure_name = "StructuredFailure"

    def __init__(self, failure: "Failure") -> None:
        super().__init__(f"{failure.name}: {failure.message}")
        self.failure = failure


class AllocationNotFoundError(BlobnetError):
    """Accept was invoked for a blob that was never allocated in the space."""

    failure_name = "AllocationNotFound"


class BlobNotFoundError(BlobnetError):
    """The storage node holds no bytes for the digest."""

    failure_name = "BlobNotFound"


class BlobSizeMismatchError(BlobnetError):
    failure_name = "BlobSizeMismatch"


class AllocationPendingError(BlobnetError):
    """Space is reserved for the blob but its bytes have not arrived yet.

    The holder of the outstanding address should retry its PUT.
    """

    failure_name = "AllocationPending"


class AllocationExpiredError(BlobnetError):
    failure_name = "AllocationExpired"


class Stage(str, Enum):
    """Stages of the upload scenario, used to report where a run failed."""

    ALLOCATE = "allocate"
    TRANSFER = "transfer"
    CONCLUDE = "conclude"
    INDEX = "index"
    PUBLISH = "publish"
    QUERY = "query"


class ScenarioError(BlobnetError):
    """Wraps the error that stopped a scenario together with its stage."""

    failure_name = "ScenarioError"

    def __init__(self, stage: Stage, cause: BaseException) -> None:
        super().__init__(f"{stage.value} failed: {cause}")
        self.stage = stage
        self.cause = cause


__all__ = [
    "BlobnetError",
    "AuthorizationError",
    "IntegrityError",
    "NotYetConvergedError",
    "TransportError",
    "StructuredFailureError",
    "AllocationNotFoundError",
    "BlobNotFoundError",
    "BlobSizeMismatchError",
    "AllocationPendingError",
    "AllocationExpiredError",
    "Stage",
    "ScenarioError",
]
