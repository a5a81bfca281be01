"""Authentication endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..dependencies import get_authenticator
from ..schemas import ErrorResponse, LoginRequest, TokenResponse
from ..security import Authenticator

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/token",
    response_model=TokenResponse,
    summary="Issue bearer token",
    operation_id="issueToken",
    openapi_extra={"security": []},
    responses={
        200: {
            "description": "Signed bearer token.",
            "content": {
                "application/json": {
                    "example": {"token": "eyJhbGciOiJIUzI1NiJ9...", "type": "Bearer", "expiresInSeconds": 3600}
                }
            },
        },
        401: {
            "description": "Unknown user, disabled account or wrong password.",
            "content": {"application/json": {"schema": ErrorResponse.model_json_schema(by_alias=True)}},
        },
    },
)
def issue_token(credentials: LoginRequest, authenticator: Authenticator = Depends(get_authenticator)) -> TokenResponse:
    """Exchange a username and password for a signed bearer token."""

    issued = authenticator.issue_token(credentials.username, credentials.password)
    return TokenResponse(token=issued.token, expires_in_seconds=issued.expires_in_seconds)
