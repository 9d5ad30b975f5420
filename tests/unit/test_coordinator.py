"""Unit tests for cross-source promotion."""

from unittest.mock import MagicMock

from notifydeck.capture.coordinator import CaptureCoordinator


class TestCaptureCoordinator:
    """Tests for CaptureCoordinator."""

    def test_attach_sets_back_references(self):
        poller, scanner = MagicMock(), MagicMock()
        coordinator = CaptureCoordinator()
        coordinator.attach(poller=poller, scanner=scanner)
        assert poller.coordinator is coordinator
        assert scanner.coordinator is coordinator

    def test_banner_promotes_poller(self):
        poller = MagicMock()
        coordinator = CaptureCoordinator()
        coordinator.attach(poller=poller)

        coordinator.banner_detected()

        poller.force_active.assert_called_once_with()

    def test_row_does_not_promote_scanner_by_default(self):
        scanner = MagicMock()
        coordinator = CaptureCoordinator()
        coordinator.attach(scanner=scanner)

        coordinator.row_detected()

        scanner.force_active.assert_not_called()

    def test_row_promotes_scanner_when_enabled(self):
        scanner = MagicMock()
        coordinator = CaptureCoordinator(promote_scanner_on_row=True)
        coordinator.attach(scanner=scanner)

        coordinator.row_detected()

        scanner.force_active.assert_called_once_with()

    def test_detached_coordinator_is_noop(self):
        coordinator = CaptureCoordinator(promote_scanner_on_row=True)
        coordinator.banner_detected()
        coordinator.row_detected()
