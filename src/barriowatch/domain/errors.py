"""
Error taxonomy.

Every error carries a stable snake_case `code` so the API and CLI can render a distinct
message per kind without string-matching exception text.
"""

from __future__ import annotations


class BarrioWatchError(Exception):
    """Base class for all domain errors."""

    code = "barriowatch_error"


class LocationUnavailable(BarrioWatchError):
    """The requester's position could not be obtained."""

    code = "location_unavailable"

    def __init__(self, message: str = "Location is unavailable; allow location access and retry."):
        super().__init__(message)


class StoreError(BarrioWatchError):
    """Wraps any failure of an external store (tables, blobs, auth)."""

    code = "store_error"


class ReportValidationError(BarrioWatchError, ValueError):
    """A submitted report violates a content rule."""

    code = "invalid_report"


class AudioCaptureFailed(BarrioWatchError):
    """The audio device could not be opened. Recoverable: SOS sessions continue without audio."""

    code = "audio_capture_failed"


class VerificationError(BarrioWatchError):
    """Base class for refusals of `verify_report`."""

    code = "verification_error"


class ReportNotFound(VerificationError):
    code = "report_not_found"

    def __init__(self, report_id: str, message: str | None = None):
        super().__init__(message or f"Report {report_id!r} is not among the reports pending verification.")
        self.report_id = report_id


class SelfVerificationForbidden(VerificationError):
    code = "self_verification_forbidden"

    def __init__(self, report_id: str):
        super().__init__("You cannot verify a report you submitted.")
        self.report_id = report_id


class TooFarFromIncident(VerificationError):
    code = "too_far_from_incident"

    def __init__(self, distance_m: float, max_distance_m: float):
        super().__init__(
            f"You must be within {max_distance_m:g} meters of the incident to verify it. "
            f"Current distance: {round(distance_m)} meters."
        )
        self.distance_m = distance_m
        self.max_distance_m = max_distance_m


class AlreadyVerified(VerificationError):
    code = "already_verified"

    def __init__(self, report_id: str):
        super().__init__(f"Report {report_id!r} was already verified.")
        self.report_id = report_id
