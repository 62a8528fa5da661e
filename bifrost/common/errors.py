"""
Error classes for the bifrost gateway.

Every error the gateway surfaces to a caller derives from BifrostError and
carries an HTTP status and a stable error code. The API layer renders them
once, in a single exception handler:

- NotFoundError: job or store resource absent
- ForbiddenError: caller does not own the job and is not an admin
- UnknownError: launcher answered with an unexpected status
- ProvisioningPartialFailure: a required context sub-task failed, the job
  was not submitted

ParseError never reaches a caller; the diagnostics extractor degrades the
affected segment instead. ExitSpecLoadError aborts start-up.
"""

from typing import Any, List, Optional


class BifrostError(Exception):
    """Base exception for bifrost."""

    status_code = 500
    code = "InternalServerError"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFoundError(BifrostError):
    status_code = 404
    code = "NoJobError"


class ForbiddenError(BifrostError):
    status_code = 403
    code = "ForbiddenUserError"


class UnknownError(BifrostError):
    """
    The launcher returned a status the gateway does not expect.

    The upstream status and raw body are kept so the caller can see what
    the launcher actually said.
    """

    code = "UnknownError"

    def __init__(self, upstream_status: int, body: Any = None):
        super().__init__(body if isinstance(body, str) else str(body or ""))
        self.upstream_status = upstream_status
        self.body = body
        if upstream_status is not None and upstream_status >= 400:
            self.status_code = upstream_status

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "upstreamStatus": self.upstream_status}


class ParseError(BifrostError):
    code = "ParseError"


class ProvisioningPartialFailure(BifrostError):
    """One or more required provisioning sub-tasks failed."""

    code = "ProvisioningError"

    def __init__(self, job_name: str, failures: List[BaseException]):
        first: Optional[BaseException] = failures[0] if failures else None
        super().__init__(
            f"Failed to prepare context for job {job_name}: "
            f"{len(failures)} required task(s) failed, first error: {first}"
        )
        self.job_name = job_name
        self.failures = failures


class ExitSpecLoadError(BifrostError):
    code = "ExitSpecLoadError"
