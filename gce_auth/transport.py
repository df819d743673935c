import asyncio
from typing import Optional

import httpx
import requests
import structlog
from requests.adapters import BaseAdapter, HTTPAdapter

from gce_auth.token import DEFAULT_SERVICE_ACCOUNT, ServiceAccountTokenSource

__all__ = [
    "AuthenticatingAdapter",
    "AuthenticatingTransport",
    "AsyncAuthenticatingTransport",
    "new_transport",
]

AUTHORIZATION_HEADER = "Authorization"

log = structlog.stdlib.get_logger("transport")


def _bearer(token: str) -> str:
    return f"Bearer {token}"


class AuthenticatingAdapter(BaseAdapter):
    """Adds a service account bearer token to requests sent through ``base``.

    The header is added, not replaced: when the caller already set an
    Authorization header, both credentials are sent, comma separated.

    ``base`` is shared by reference and must be safe for concurrent use.
    It is not closed together with this adapter.
    """

    def __init__(
        self,
        token_source: ServiceAccountTokenSource,
        base: Optional[BaseAdapter] = None,
    ):
        super().__init__()
        self.token_source = token_source
        self.base = base if base is not None else HTTPAdapter()

    def send(
        self, request: requests.PreparedRequest, *args, **kwargs
    ) -> requests.Response:
        token = self.token_source.token()

        bearer = _bearer(token)
        existing = request.headers.get(AUTHORIZATION_HEADER)
        if existing:
            log.debug("Request already carries an Authorization header")
            bearer = f"{existing}, {bearer}"
        request.headers[AUTHORIZATION_HEADER] = bearer

        return self.base.send(request, *args, **kwargs)

    def close(self):
        pass


def _add_authorization(request: httpx.Request, token: str) -> None:
    request.headers = httpx.Headers(
        request.headers.multi_items() + [(AUTHORIZATION_HEADER, _bearer(token))]
    )


class AuthenticatingTransport(httpx.BaseTransport):
    def __init__(
        self,
        token_source: ServiceAccountTokenSource,
        base: Optional[httpx.BaseTransport] = None,
    ):
        self.token_source = token_source
        self.base = base if base is not None else httpx.HTTPTransport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        _add_authorization(request, self.token_source.token())

        return self.base.handle_request(request)


class AsyncAuthenticatingTransport(httpx.AsyncBaseTransport):
    """Async flavour of :class:`AuthenticatingTransport`.

    Token refreshes are blocking and run in a worker thread.
    """

    def __init__(
        self,
        token_source: ServiceAccountTokenSource,
        base: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_source = token_source
        self.base = base if base is not None else httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        token = await asyncio.to_thread(self.token_source.token)
        _add_authorization(request, token)

        return await self.base.handle_async_request(request)


def new_transport(
    service_account: str = DEFAULT_SERVICE_ACCOUNT,
    base: Optional[BaseAdapter] = None,
) -> AuthenticatingAdapter:
    """
    Returns an adapter authenticating as ``service_account`` over ``base``.
    An empty service account selects "default".
    """
    return AuthenticatingAdapter(
        token_source=ServiceAccountTokenSource(service_account=service_account),
        base=base,
    )
