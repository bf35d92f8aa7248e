"""Security related functions."""

from dataclasses import dataclass

import jwt
from fastapi import HTTPException, status
from jwt import InvalidTokenError

from app.core.config import settings
from models.user import UserType


@dataclass(frozen=True)
class AuthUser:
    """Verified identity handed to the chat core by the auth layer."""

    id: int
    user_type: UserType = UserType.USER
    name: str | None = None

    @property
    def is_tax_accountant(self) -> bool:
        return self.user_type == UserType.TAX_ACCOUNTANT


class TokenVerifier:
    """
    Verifies access tokens issued by the accounts service.

    Tokens are HS256 JWTs signed with the shared access secret. The chat core
    trusts the identity claims of a token that passes verification and never
    looks the user up again.

    :ivar secret_key: The secret used to verify signatures.
    :type secret_key: str
    :ivar algorithm: The expected signing algorithm.
    :type algorithm: str
    """

    def __init__(self, secret_key: str | None = None, algorithm: str | None = None):
        self.secret_key = secret_key or settings.access_secret
        self.algorithm = algorithm or settings.algorithm

    def verify_token(self, token: str) -> dict:
        """
        Decodes and validates a JWT, raising an HTTPException with a 401 status
        when the signature, expiry or payload is invalid.

        :param token: The JWT token to be verified.
        :return: The decoded payload.
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except InvalidTokenError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid authentication token: {str(e)}",
            ) from e

    def identify(self, token: str) -> AuthUser:
        """Verify ``token`` and build the caller's identity from its claims."""
        return identity_from_payload(self.verify_token(token))


def identity_from_payload(payload: dict) -> AuthUser:
    """Build an AuthUser from ``id``/``sub``, ``user_type`` and ``name`` claims."""
    raw_id = payload.get("id", payload.get("sub"))
    try:
        user_id = int(raw_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload - missing user ID",
        ) from None

    try:
        user_type = UserType(str(payload.get("user_type") or UserType.USER.value).upper())
    except ValueError:
        user_type = UserType.USER

    return AuthUser(id=user_id, user_type=user_type, name=payload.get("name"))


def create_access_token(user_id: int, user_type: UserType = UserType.USER, name: str | None = None) -> str:
    """Sign a token for ``user_id``. Used by tooling and tests; issuance lives in the accounts service."""
    payload = {"id": user_id, "user_type": user_type.value}
    if name:
        payload["name"] = name
    return jwt.encode(payload, settings.access_secret, algorithm=settings.algorithm)
