from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    CHORD_SHEET_NOT_FOUND = "CHORD_SHEET_NOT_FOUND"
    # Only ever logged: write-back failures are swallowed at the tier boundary.
    STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"


_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UPSTREAM_UNAVAILABLE: 502,
    ErrorCode.CHORD_SHEET_NOT_FOUND: 404,
    ErrorCode.STORAGE_WRITE_FAILED: 500,
}


class ChordTierError(Exception):
    """Raised for the expected failure conditions of a resolution request.

    Callers see ``INVALID_INPUT`` (rejected before any tier is consulted),
    ``CHORD_SHEET_NOT_FOUND`` (the live source has no chords for the path) and
    ``UPSTREAM_UNAVAILABLE`` (every tier in the chain failed).
    Caught by server.py and serialised into the JSON error body.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: str = "",
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        self.recoverable = recoverable

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.code]

    def to_dict(self) -> dict:
        body: dict = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


def invalid_input(message: str, details: str = "") -> ChordTierError:
    return ChordTierError(ErrorCode.INVALID_INPUT, message, details, recoverable=False)


def upstream_unavailable(details: str) -> ChordTierError:
    return ChordTierError(
        ErrorCode.UPSTREAM_UNAVAILABLE,
        "Bad Gateway",
        details,
        recoverable=True,
    )


def chord_sheet_not_found(path: str) -> ChordTierError:
    return ChordTierError(
        ErrorCode.CHORD_SHEET_NOT_FOUND,
        "Chord sheet not found",
        f"No chord sheet found at {path}",
        recoverable=False,
    )
