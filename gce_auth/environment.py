import threading
from functools import lru_cache
from typing import Optional

import structlog

from gce_auth.errors import MetadataError
from gce_auth.metadata import MetadataClient, metadata_value

__all__ = [
    "EnvironmentDetector",
    "project_id",
    "on_gce",
]

PROJECT_ID_SUFFIX = "project/project-id"

log = structlog.stdlib.get_logger("environment")


class EnvironmentDetector:
    """Decides once whether this process runs on Compute Engine.

    The first project ID lookup is memoised for the lifetime of the instance,
    failures included: if the metadata service is unreachable on the first
    call, the instance reports "not on GCE" from then on, even if the service
    becomes reachable later. Build a new detector to check again.
    """

    def __init__(self, metadata: Optional[MetadataClient] = None):
        self.metadata = metadata
        self._lock = threading.Lock()
        self._project_id: Optional[str] = None

    def project_id(self) -> str:
        """Returns the current instance's project ID, or "" when not on GCE."""
        if self._project_id is not None:
            return self._project_id

        with self._lock:
            if self._project_id is None:
                self._project_id = self._fetch_project_id()

                log.info("Detected environment", on_gce=self._project_id != "")

        return self._project_id

    def on_gce(self) -> bool:
        return self.project_id() != ""

    def _fetch_project_id(self) -> str:
        try:
            if self.metadata is None:
                return metadata_value(PROJECT_ID_SUFFIX)

            return self.metadata.value(PROJECT_ID_SUFFIX)
        except MetadataError as e:
            log.debug("Project ID lookup failed", error=str(e))
            return ""


@lru_cache(maxsize=1)
def _default_detector() -> EnvironmentDetector:
    return EnvironmentDetector()


def project_id() -> str:
    return _default_detector().project_id()


def on_gce() -> bool:
    """Reports whether this process is running on Google Compute Engine."""
    return _default_detector().on_gce()
