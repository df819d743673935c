from functools import lru_cache
from typing import Optional

import requests
import structlog

from gce_auth.config import Config, ConfigMetadata
from gce_auth.errors import BadStatus, IncompleteResponse, TransportFailure

__all__ = [
    "METADATA_FLAVOR_HEADER",
    "MetadataClient",
    "metadata_value",
]

METADATA_FLAVOR_HEADER = {"Metadata-Flavor": "Google"}

log = structlog.stdlib.get_logger("metadata")


class MetadataClient:
    """Reads single values from the Compute Engine metadata service.

    Every lookup is one blocking GET; nothing is cached or retried here.
    """

    def __init__(self, base_url: str, timeout: Optional[float] = None):
        self.base_url = base_url
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: ConfigMetadata) -> "MetadataClient":
        return cls(base_url=config.base_url, timeout=config.timeout)

    def value(self, suffix: str) -> str:
        """
        Returns a value from the metadata service.
        :param suffix: appended verbatim to the base url, e.g. "project/project-id"
        :return: the response body as text
        """
        url = self.base_url + suffix

        try:
            res = requests.get(
                url=url,
                headers=METADATA_FLAVOR_HEADER,
                timeout=self.timeout,
                stream=True,
            )
        except requests.exceptions.RequestException as e:
            log.debug("Metadata service unreachable", url=url, error=str(e))
            raise TransportFailure(str(e), url=url) from e

        try:
            if res.status_code != 200:
                log.debug(
                    "Metadata service returned an error",
                    url=url,
                    status_code=res.status_code,
                )
                raise BadStatus(res.status_code, url)

            try:
                body = res.content
            except requests.exceptions.RequestException as e:
                raise IncompleteResponse(str(e), url=url) from e
        finally:
            res.close()

        return body.decode("utf-8", errors="replace")


@lru_cache(maxsize=1)
def _default_client() -> MetadataClient:
    return MetadataClient.from_config(Config().metadata)


def metadata_value(suffix: str) -> str:
    """Returns a value from the metadata service.

    The suffix is appended to "http://metadata/computeMetadata/v1/".
    """
    return _default_client().value(suffix)
