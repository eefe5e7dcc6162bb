"""Credential providers for the remote storage client."""

from __future__ import annotations

from talevault.protocols.remote import AuthRequiredError


class StaticTokenProvider:
    """Serves a pre-issued access token; there is no interactive sign-in."""

    def __init__(self, token: str | None) -> None:
        self._token = token.strip() if token else None

    def is_token_valid(self) -> bool:
        return bool(self._token)

    async def get_valid_token(self, interactive: bool = False) -> str:
        del interactive
        if not self._token:
            raise AuthRequiredError("Google Drive sign-in required")
        return self._token


__all__ = ["StaticTokenProvider"]
