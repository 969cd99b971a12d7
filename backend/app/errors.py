"""
backend/app/errors.py

Purpose:
    Stable, machine-readable error codes for the pick engine. Services raise
    LmsError; FastAPI renders it like any HTTPException with a
    {"code", "message"} detail payload.
"""

from enum import Enum

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FORBIDDEN = "FORBIDDEN"
    COMPETITION_NOT_FOUND = "COMPETITION_NOT_FOUND"
    ROUND_NOT_FOUND = "ROUND_NOT_FOUND"
    FIXTURE_NOT_FOUND = "FIXTURE_NOT_FOUND"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
    ROUND_LOCKED = "ROUND_LOCKED"
    ROUND_NOT_LOCKED = "ROUND_NOT_LOCKED"
    TEAM_NOT_ELIGIBLE = "TEAM_NOT_ELIGIBLE"
    TEAM_ALREADY_USED = "TEAM_ALREADY_USED"
    TEAM_NOT_IN_LIST = "TEAM_NOT_IN_LIST"
    TEAM_INACTIVE = "TEAM_INACTIVE"
    PLAYER_ELIMINATED = "PLAYER_ELIMINATED"
    FIXTURE_NOT_IN_ROUND = "FIXTURE_NOT_IN_ROUND"
    NO_PICK_TO_WITHDRAW = "NO_PICK_TO_WITHDRAW"
    FIXTURE_ALREADY_RESOLVED = "FIXTURE_ALREADY_RESOLVED"


_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.COMPETITION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ROUND_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.FIXTURE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PLAYER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ROUND_LOCKED: status.HTTP_409_CONFLICT,
    ErrorCode.ROUND_NOT_LOCKED: status.HTTP_409_CONFLICT,
    ErrorCode.TEAM_NOT_ELIGIBLE: status.HTTP_409_CONFLICT,
    ErrorCode.TEAM_ALREADY_USED: status.HTTP_409_CONFLICT,
    ErrorCode.TEAM_NOT_IN_LIST: status.HTTP_409_CONFLICT,
    ErrorCode.TEAM_INACTIVE: status.HTTP_409_CONFLICT,
    ErrorCode.PLAYER_ELIMINATED: status.HTTP_409_CONFLICT,
    ErrorCode.FIXTURE_NOT_IN_ROUND: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NO_PICK_TO_WITHDRAW: status.HTTP_404_NOT_FOUND,
    ErrorCode.FIXTURE_ALREADY_RESOLVED: status.HTTP_409_CONFLICT,
}


class LmsError(HTTPException):
    """Business-rule or validation failure, surfaced verbatim to the caller."""

    def __init__(self, code: ErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(
            status_code=_STATUS_BY_CODE[code],
            detail={"code": code.value, "message": message},
        )
