"""Error kinds and exceptions raised inside the recognition components.

Components raise these internally and convert them into failed
:class:`~screen2design.vision.types.AnalysisResult` values at their public
``analyze`` boundary, so callers only ever inspect ``error_kind``.
"""

from __future__ import annotations

from typing import Final, Literal

ErrorKind = Literal[
    "decode_unavailable",
    "analysis_failed",
    "service_unconfigured",
    "service_unavailable",
    "request_failed",
    "response_parse_failed",
    "timeout",
]

ERROR_KINDS: Final[set[str]] = {
    "decode_unavailable",
    "analysis_failed",
    "service_unconfigured",
    "service_unavailable",
    "request_failed",
    "response_parse_failed",
    "timeout",
}


class RecognitionError(Exception):
    """Base error carrying a machine-readable :data:`ErrorKind`."""

    kind: ErrorKind = "analysis_failed"

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            if kind not in ERROR_KINDS:
                raise ValueError(f"Unknown error kind: {kind!r}. Allowed: {sorted(ERROR_KINDS)}")
            self.kind = kind


class DecodeUnavailableError(RecognitionError):
    """The runtime has no decoder for the image (expected in sandboxed hosts)."""

    kind: ErrorKind = "decode_unavailable"


class ImageDecodeError(RecognitionError):
    kind: ErrorKind = "analysis_failed"


class ServiceUnconfiguredError(RecognitionError):
    kind: ErrorKind = "service_unconfigured"


class ServiceUnavailableError(RecognitionError):
    kind: ErrorKind = "service_unavailable"


class RequestFailedError(RecognitionError):
    kind: ErrorKind = "request_failed"


class ResponseParseError(RecognitionError):
    kind: ErrorKind = "response_parse_failed"


class ServiceTimeoutError(RecognitionError):
    kind: ErrorKind = "timeout"
