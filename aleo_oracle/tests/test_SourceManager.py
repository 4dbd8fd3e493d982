"""Unit tests for SourceManager."""

from unittest.mock import patch

from aleo_oracle.src.SourceManager import SourceManager, SourceStatus


class TestSourceManagerInit:
    """Test SourceManager initialization."""

    def test_init_with_sources(self) -> None:
        """Sources should be tracked from init."""
        manager = SourceManager(["a", "b", "c"])
        assert manager.sources == ["a", "b", "c"]
        assert len(manager.get_all_status()) == 3

    def test_init_empty_sources(self) -> None:
        """Empty sources list should work."""
        manager = SourceManager([])
        assert manager.sources == []
        assert manager.get_healthy_sources() == []

    def test_initial_status(self) -> None:
        """Initial status should have zero failures."""
        manager = SourceManager(["a"])
        status = manager.get_source_status("a")

        assert status == SourceStatus()
        assert status.probe_healthy is None

    def test_new_sources_healthy(self) -> None:
        manager = SourceManager(["a", "b"])
        assert manager.get_health_map() == {"a": True, "b": True}


class TestSourceManagerFailures:
    """Test failure recording."""

    def test_failure_counters(self) -> None:
        manager = SourceManager(["a"])
        manager.record_failure("a")
        manager.record_failure("a")

        status = manager.get_source_status("a")
        assert status.consecutive_failures == 2
        assert status.total_failures == 2

    def test_unhealthy_after_threshold(self) -> None:
        """A source is unhealthy after failure_threshold consecutive failures."""
        manager = SourceManager(["a"], failure_threshold=3)
        manager.record_failure("a")
        manager.record_failure("a")
        assert manager.is_source_healthy("a")

        manager.record_failure("a")
        assert not manager.is_source_healthy("a")
        assert manager.get_healthy_sources() == []

    def test_success_resets_consecutive_failures(self) -> None:
        manager = SourceManager(["a"], failure_threshold=2)
        manager.record_failure("a")
        manager.record_failure("a")

        with patch("aleo_oracle.src.SourceManager.time.time", return_value=1000.0):
            manager.record_success("a")

        status = manager.get_source_status("a")
        assert status.consecutive_failures == 0
        assert status.total_failures == 2
        assert status.total_successes == 1
        assert status.last_success == 1_000_000
        assert manager.is_source_healthy("a")

    def test_unknown_source_tracked_on_record(self) -> None:
        """Recording an untracked source starts tracking it."""
        manager = SourceManager(["a"])
        manager.record_failure("b")

        assert manager.sources == ["a", "b"]
        assert manager.get_source_status("b").total_failures == 1

    def test_unknown_source_unhealthy(self) -> None:
        manager = SourceManager(["a"])
        assert not manager.is_source_healthy("zzz")
        assert manager.get_source_status("zzz") is None


class TestSourceManagerProbes:
    """Test health probe results."""

    def test_failed_probe_marks_unhealthy(self) -> None:
        manager = SourceManager(["a", "b"])
        with patch("aleo_oracle.src.SourceManager.time.time", return_value=50.0):
            manager.record_probe("a", False)
        manager.record_probe("b", True)

        assert manager.get_health_map() == {"a": False, "b": True}
        assert manager.get_source_status("a").last_probe == 50_000

    def test_successful_probe_does_not_hide_failures(self) -> None:
        """Consecutive failed cycles still count after a good probe."""
        manager = SourceManager(["a"], failure_threshold=1)
        manager.record_failure("a")
        manager.record_probe("a", True)

        assert not manager.is_source_healthy("a")


class TestSourceManagerReset:
    """Test resetting a source."""

    def test_reset_source(self) -> None:
        manager = SourceManager(["a"], failure_threshold=1)
        manager.record_failure("a")
        manager.record_probe("a", False)
        manager.reset_source("a")

        assert manager.get_source_status("a") == SourceStatus()
        assert manager.is_source_healthy("a")

    def test_reset_unknown_source_noop(self) -> None:
        manager = SourceManager(["a"])
        manager.reset_source("zzz")
        assert manager.get_source_status("zzz") is None

    def test_status_to_dict(self) -> None:
        manager = SourceManager(["a"])
        manager.record_failure("a")
        data = manager.get_source_status("a").to_dict()

        assert data["consecutive_failures"] == 1
        assert data["total_successes"] == 0
