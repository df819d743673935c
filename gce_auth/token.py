import threading
import time
from typing import Callable, NamedTuple, Optional

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from gce_auth.errors import (
    EmptyToken,
    MalformedTokenResponse,
    MetadataError,
    TokenError,
    log_exception,
)
from gce_auth.metadata import MetadataClient, metadata_value

__all__ = [
    "DEFAULT_SERVICE_ACCOUNT",
    "Token",
    "TokenResponse",
    "ServiceAccountTokenSource",
]

DEFAULT_SERVICE_ACCOUNT = "default"
REFRESH_MARGIN_SECONDS = 2

log = structlog.stdlib.get_logger("token")


class Token(NamedTuple):
    access_token: str
    # Absolute, in the units of the owning source's clock.
    expires_at: float


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)

    access_token: str = ""
    expires_in: int = 0


class ServiceAccountTokenSource:
    """Caches the access token of one on-host service account.

    The cache is either empty or holds exactly one token. It is refreshed from
    the metadata service when empty or when the token expires within
    ``refresh_margin_seconds``. The check and the refresh run under one lock, so
    concurrent callers facing an empty cache trigger a single fetch.
    """

    def __init__(
        self,
        service_account: str = DEFAULT_SERVICE_ACCOUNT,
        metadata: Optional[MetadataClient] = None,
        refresh_margin_seconds: int = REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.service_account = service_account or DEFAULT_SERVICE_ACCOUNT
        self.metadata = metadata
        self.refresh_margin_seconds = refresh_margin_seconds
        self.clock = clock

        self._lock = threading.Lock()
        self._token: Optional[Token] = None

    @property
    def state(self) -> Optional[Token]:
        return self._token

    @property
    def token_suffix(self) -> str:
        return f"instance/service-accounts/{self.service_account}/token"

    def token(self) -> str:
        with self._lock:
            if self._is_fresh(self._token):
                return self._token.access_token

            self._token = self._fetch_token()
            return self._token.access_token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None

    def _is_fresh(self, token: Optional[Token]) -> bool:
        if token is None or not token.access_token:
            return False

        return token.expires_at > self.clock() + self.refresh_margin_seconds

    def _fetch_token(self) -> Token:
        try:
            body = self._metadata_value(self.token_suffix)
            response = self._parse(body)
        except (MetadataError, TokenError) as e:
            log_exception(e, service_account=self.service_account)
            raise

        log.info(
            "Refreshed access token",
            service_account=self.service_account,
            expires_in=response.expires_in,
        )

        return Token(
            access_token=response.access_token,
            expires_at=self.clock() + response.expires_in,
        )

    def _metadata_value(self, suffix: str) -> str:
        if self.metadata is None:
            return metadata_value(suffix)

        return self.metadata.value(suffix)

    @staticmethod
    def _parse(body: str) -> TokenResponse:
        # A bare null decodes to an empty response.
        if body.strip() == "null":
            raise EmptyToken()

        try:
            response = TokenResponse.model_validate_json(body)
        except ValidationError as e:
            raise MalformedTokenResponse(f"malformed token response: {e}") from e

        if not response.access_token:
            raise EmptyToken()

        return response
