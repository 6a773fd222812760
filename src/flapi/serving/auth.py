"""Endpoint authentication against credentials declared in configuration."""

from __future__ import annotations

import base64
import binascii
import hmac
import logging
from collections.abc import Mapping
from typing import Protocol

from flapi.catalog.definitions import EndpointDefinition
from flapi.services.errors import AuthenticationError

LOG = logging.getLogger("flapi.serving.auth")


class Authenticator(Protocol):
    """Verify the caller of a protected endpoint."""

    def authenticate(self, endpoint: EndpointDefinition, headers: Mapping[str, str]) -> str | None:
        """Return the authenticated principal, ``None`` for open endpoints."""
        ...


def _authorization(headers: Mapping[str, str]) -> str:
    for key, value in headers.items():
        if key.lower() == "authorization":
            return value.strip()
    return ""


def _split_scheme(header: str) -> tuple[str, str]:
    scheme, _, credentials = header.partition(" ")
    return scheme.lower(), credentials.strip()


class ConfiguredAuthenticator:
    """
    Check ``Authorization`` headers against users and tokens from the endpoint.

    Basic auth compares ``username:password`` with the configured users; bearer
    auth compares the token with the configured static tokens.
    """

    def authenticate(self, endpoint: EndpointDefinition, headers: Mapping[str, str]) -> str | None:
        """
        Authenticate a request for ``endpoint``.

        Returns
        -------
        str | None
            Principal name (username, or ``"token"``) or ``None`` when auth is off.

        Raises
        ------
        AuthenticationError
            If credentials are missing, malformed or do not match.
        """
        policy = endpoint.auth
        if not policy.enabled:
            return None
        scheme, credentials = _split_scheme(_authorization(headers))
        if scheme != policy.scheme or not credentials:
            message = f"Missing {policy.scheme} credentials"
            raise AuthenticationError(message, scheme=policy.scheme)
        if policy.scheme == "basic":
            return self._check_basic(endpoint, credentials)
        return self._check_bearer(endpoint, credentials)

    @staticmethod
    def _check_basic(endpoint: EndpointDefinition, credentials: str) -> str:
        try:
            decoded = base64.b64decode(credentials, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            message = "Malformed basic credentials"
            raise AuthenticationError(message, scheme="basic") from exc
        username, sep, password = decoded.partition(":")
        if sep:
            for known_user, known_password in endpoint.auth.users:
                user_ok = hmac.compare_digest(username.encode(), known_user.encode())
                password_ok = hmac.compare_digest(password.encode(), known_password.encode())
                if user_ok and password_ok:
                    return username
        LOG.info("Rejected basic credentials for %s user=%s", endpoint.key, username)
        message = "Invalid username or password"
        raise AuthenticationError(message, scheme="basic")

    @staticmethod
    def _check_bearer(endpoint: EndpointDefinition, token: str) -> str:
        for known in endpoint.auth.tokens:
            if hmac.compare_digest(token.encode(), known.encode()):
                return "token"
        LOG.info("Rejected bearer token for %s", endpoint.key)
        message = "Invalid bearer token"
        raise AuthenticationError(message, scheme="bearer")


__all__ = ["Authenticator", "ConfiguredAuthenticator"]
