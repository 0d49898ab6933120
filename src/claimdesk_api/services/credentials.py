"""Operator bearer token resolution for upstream claims calls."""

from __future__ import annotations

from typing import Protocol


class NotAuthenticatedError(RuntimeError):
    """Raised when no operator token is available for an upstream call."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class CredentialProvider(Protocol):
    """Protocol for objects that can supply the current operator token."""

    async def get_token(self) -> str | None:
        """Return the bearer token or ``None`` when the operator is signed out."""


class StaticTokenProvider:
    """Holds the latest token presented by the operator.

    The console API refreshes it from the ``Authorization`` header on every
    request so a session always calls upstream with the operator's current
    credential.
    """

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    async def get_token(self) -> str | None:
        return self._token

    def update(self, token: str | None) -> None:
        self._token = token or None

    def clear(self) -> None:
        self._token = None


def parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    scheme, _, token = header_value.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


async def require_token(provider: CredentialProvider) -> str:
    token = await provider.get_token()
    if not token:
        raise NotAuthenticatedError()
    return token


__all__ = [
    "CredentialProvider",
    "NotAuthenticatedError",
    "StaticTokenProvider",
    "parse_bearer_token",
    "require_token",
]
