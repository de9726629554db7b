"""Exception types surfaced by the capture and upload layers.

Detection-layer anomalies (missing keypoints, low region scores) are not
exceptions: they degrade to "no evidence" locally. Only resource and upload
problems are raised and reported to the operator.
"""

from __future__ import annotations


class CashGuardError(Exception):
    """Base class for monitor errors."""


class ResourceNotReadyError(CashGuardError):
    """The encoder or capture source is not available for a transition."""


class UploadError(CashGuardError):
    """Clip submission failed (network, HTTP status, or bad acknowledgment)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyArtifactError(UploadError):
    """Refused to submit a clip with zero bytes."""
