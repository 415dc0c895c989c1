from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from fastapi import Request

from taskapi.tasks.errors import AuthenticationError


class IdentityProvider(Protocol):
    """Resolve the caller identity for a request or raise AuthenticationError."""

    def resolve(self, request: Request) -> str: ...


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class StaticTokenIdentityProvider:
    """Map opaque bearer tokens to user ids.

    Token issuing lives elsewhere; this provider only checks that a presented
    token is known.
    """

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = dict(tokens)

    @classmethod
    def from_string(cls, raw: str) -> StaticTokenIdentityProvider:
        """Parse `token:user,token2:user2`. Malformed entries are skipped."""
        tokens: dict[str, str] = {}
        for entry in (raw or "").split(","):
            token, sep, user = entry.strip().partition(":")
            if sep and token.strip() and user.strip():
                tokens[token.strip()] = user.strip()
        return cls(tokens)

    def resolve(self, request: Request) -> str:
        token = _bearer_token(request)
        if token is None:
            raise AuthenticationError("Not authorized, no token")
        user = self._tokens.get(token)
        if user is None:
            raise AuthenticationError("Not authorized, token failed")
        return user


__all__ = ["IdentityProvider", "StaticTokenIdentityProvider"]
