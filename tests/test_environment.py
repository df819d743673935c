import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock, patch

import pytest
from structlog.testing import capture_logs

from gce_auth import environment
from gce_auth.environment import EnvironmentDetector
from gce_auth.errors import BadStatus, TransportFailure
from gce_auth.metadata import MetadataClient


@pytest.fixture
def metadata():
    client = Mock(spec=MetadataClient)
    client.value.return_value = "my-project"
    return client


class TestEnvironmentDetector:
    def test_project_id(self, metadata):
        detector = EnvironmentDetector(metadata=metadata)

        assert detector.project_id() == "my-project"
        assert detector.on_gce() is True
        metadata.value.assert_called_once_with("project/project-id")

    def test_project_id_is_memoised(self, metadata):
        detector = EnvironmentDetector(metadata=metadata)

        for _ in range(3):
            detector.project_id()
            detector.on_gce()

        metadata.value.assert_called_once()

    @pytest.mark.parametrize(
        "error",
        [
            TransportFailure("no route", url="http://metadata/"),
            BadStatus(404, "http://metadata/computeMetadata/v1/project/project-id"),
        ],
    )
    def test_lookup_error_means_not_on_gce(self, metadata, error):
        metadata.value.side_effect = error
        detector = EnvironmentDetector(metadata=metadata)

        assert detector.project_id() == ""
        assert detector.on_gce() is False

    def test_first_failure_is_memoised(self, metadata):
        metadata.value.side_effect = [
            TransportFailure("no route", url="http://metadata/"),
            "my-project",
        ]
        detector = EnvironmentDetector(metadata=metadata)

        assert detector.project_id() == ""
        assert detector.project_id() == ""
        assert detector.on_gce() is False
        metadata.value.assert_called_once()

    def test_fresh_detector_checks_again(self, metadata):
        metadata.value.side_effect = [
            TransportFailure("no route", url="http://metadata/"),
            "my-project",
        ]

        assert EnvironmentDetector(metadata=metadata).on_gce() is False
        assert EnvironmentDetector(metadata=metadata).on_gce() is True

    def test_unexpected_errors_propagate(self, metadata):
        metadata.value.side_effect = ValueError("boom")
        detector = EnvironmentDetector(metadata=metadata)

        with pytest.raises(ValueError):
            detector.project_id()

    def test_concurrent_callers_share_one_lookup(self, metadata):
        barrier = threading.Barrier(8)
        detector = EnvironmentDetector(metadata=metadata)

        def lookup():
            barrier.wait()
            return detector.project_id()

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(lambda _: lookup(), range(8)))

        assert results == ["my-project"] * 8
        metadata.value.assert_called_once()

    def test_detection_is_logged_once(self, metadata):
        detector = EnvironmentDetector(metadata=metadata)

        with capture_logs() as cap_logs:
            detector.on_gce()
            detector.on_gce()

        detected = [log for log in cap_logs if log["event"] == "Detected environment"]
        assert len(detected) == 1
        assert detected[0]["on_gce"] is True

    def test_default_metadata_client(self):
        detector = EnvironmentDetector()

        with patch(
            "gce_auth.environment.metadata_value", return_value="my-project"
        ) as mock_value:
            assert detector.project_id() == "my-project"

        mock_value.assert_called_once_with("project/project-id")


@patch("gce_auth.environment.metadata_value")
def test_module_functions(mock_value):
    environment._default_detector.cache_clear()
    mock_value.side_effect = BadStatus(
        500, "http://metadata/computeMetadata/v1/project/project-id"
    )

    try:
        assert environment.on_gce() is False
        assert environment.project_id() == ""
        mock_value.assert_called_once()
    finally:
        environment._default_detector.cache_clear()
