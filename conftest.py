import json
from typing import Callable
from unittest.mock import Mock

import pytest
import requests
from requests.adapters import BaseAdapter

from gce_auth.client import ContainerGce
from gce_auth.config import Config
from gce_auth.metadata import MetadataClient
from gce_auth.token import ServiceAccountTokenSource


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingAdapter(BaseAdapter):
    """Answers every request with 200 and remembers what it was sent."""

    def __init__(self):
        super().__init__()
        self.requests: list[requests.PreparedRequest] = []
        self.closed = False

    def send(self, request, *args, **kwargs) -> requests.Response:
        self.requests.append(request)

        response = requests.Response()
        response.status_code = 200
        response.request = request
        response.url = request.url
        response._content = b"ok"
        return response

    def close(self):
        self.closed = True


def _token_body(access_token: str = "T", expires_in: int = 3600, **extra) -> str:
    return json.dumps({"access_token": access_token, "expires_in": expires_in, **extra})


@pytest.fixture
def token_body() -> Callable[..., str]:
    return _token_body


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metadata_client() -> Mock:
    client = Mock(spec=MetadataClient)
    client.value.return_value = _token_body()
    return client


@pytest.fixture
def token_source(
    metadata_client: Mock, clock: FakeClock
) -> ServiceAccountTokenSource:
    return ServiceAccountTokenSource(
        service_account="default", metadata=metadata_client, clock=clock
    )


@pytest.fixture
def recording_adapter() -> RecordingAdapter:
    return RecordingAdapter()


@pytest.fixture
def mock_config():
    yield Config(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def mock_container(mock_config: Config):
    container = ContainerGce()
    container.config.from_dict(mock_config.model_dump())

    yield container
