from functools import lru_cache

import httpx
import requests
from dependency_injector import containers, providers
from requests.adapters import BaseAdapter, HTTPAdapter

from gce_auth.config import Config
from gce_auth.metadata import MetadataClient
from gce_auth.token import ServiceAccountTokenSource
from gce_auth.transport import AuthenticatingAdapter, AuthenticatingTransport

__all__ = [
    "ContainerGce",
    "default_session",
    "default_transport",
    "default_httpx_client",
]


def _mount(adapter: BaseAdapter) -> requests.Session:
    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class ContainerGce(containers.DeclarativeContainer):
    config = providers.Configuration(strict=True)

    metadata_client = providers.Singleton(
        MetadataClient,
        base_url=config.metadata.base_url,
        timeout=config.metadata.timeout,
    )

    token_source = providers.Singleton(
        ServiceAccountTokenSource,
        service_account=config.token.service_account,
        metadata=metadata_client,
        refresh_margin_seconds=config.token.refresh_margin_seconds,
    )

    adapter = providers.Singleton(
        AuthenticatingAdapter,
        token_source=token_source,
        base=providers.Singleton(HTTPAdapter),
    )

    session = providers.Singleton(_mount, adapter=adapter)

    httpx_transport = providers.Singleton(
        AuthenticatingTransport,
        token_source=token_source,
        base=providers.Singleton(httpx.HTTPTransport),
    )

    httpx_client = providers.Singleton(httpx.Client, transport=httpx_transport)


@lru_cache(maxsize=1)
def _default_container() -> ContainerGce:
    container = ContainerGce()
    container.config.from_dict(Config().model_dump())
    return container


def default_transport() -> AuthenticatingAdapter:
    """The adapter authenticating as the "default" service account."""
    return _default_container().adapter()


def default_session() -> requests.Session:
    """A process-wide session that authenticates every request."""
    return _default_container().session()


def default_httpx_client() -> httpx.Client:
    return _default_container().httpx_client()
