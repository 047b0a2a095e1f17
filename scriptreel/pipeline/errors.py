"""
Error taxonomy for the video pipeline.

  ValidationError     — caller's fault (empty script, empty topic). Never retried.
  EndpointUnresolved  — every probe candidate was missing/unreachable. Ambiguous.
  RemoteRejected      — the real endpoint gave a definitive error.
  Undetermined        — polling budget exhausted without a definitive answer.
"""

from typing import Optional


class VideoPipelineError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(VideoPipelineError, ValueError):
    pass


class EndpointUnresolved(VideoPipelineError):
    def __init__(self, operation: str, attempts: list):
        self.operation = operation
        self.attempts = list(attempts)
        tried = ", ".join(a.tag for a in self.attempts) or "none"
        super().__init__(f"No {operation} endpoint resolved (tried: {tried})")


class RemoteRejected(VideoPipelineError):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        hint: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.hint = hint
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "status": self.status_code,
            "hint": self.hint,
            "details": self.details,
        }


class Undetermined(VideoPipelineError):
    def __init__(self, job_id: str, ticks: int = 0):
        self.job_id = job_id
        self.ticks = ticks
        super().__init__(
            f"Video {job_id} is still processing after {ticks} status checks — check again later"
        )
