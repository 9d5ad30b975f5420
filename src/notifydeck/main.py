"""Main entry point for NotifyDeck."""

import asyncio
import signal
import sys
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from notifydeck.adapters import LogDisplay, NotificationArchive
from notifydeck.capture.coordinator import CaptureCoordinator
from notifydeck.capture.poller import DatabasePoller
from notifydeck.capture.ports import AccessibilityTree, AppNameLookup, PermissionChecker
from notifydeck.capture.scanner import BannerScanner
from notifydeck.capture.scheduler import PollingConfig
from notifydeck.capture.store import NotificationStore
from notifydeck.config import Settings, get_settings
from notifydeck.logging import get_logger, setup_logging


@dataclass
class Pipeline:
    """Everything ``main`` starts and stops."""

    archive: NotificationArchive
    display: LogDisplay
    coordinator: CaptureCoordinator
    poller: DatabasePoller
    scanner: BannerScanner | None


def poller_polling_config(settings: Settings) -> PollingConfig:
    return PollingConfig(
        idle_interval=settings.poller_idle_interval,
        active_interval=settings.poller_active_interval,
        cooldown_intervals=tuple(settings.poller_cooldown_intervals),
        max_active_cycles=settings.poller_max_active_cycles,
    )


def scanner_polling_config(settings: Settings) -> PollingConfig:
    return PollingConfig(
        idle_interval=settings.scanner_idle_interval,
        active_interval=settings.scanner_active_interval,
        cooldown_intervals=tuple(settings.scanner_cooldown_intervals),
        max_active_cycles=settings.scanner_max_active_cycles,
    )


def build_pipeline(
    settings: Settings,
    store: NotificationStore,
    permissions: PermissionChecker,
    tree: AccessibilityTree | None,
    app_names: AppNameLookup | None = None,
) -> Pipeline:
    """Wire the detectors to their collaborators and to each other."""
    archive = NotificationArchive(settings.archive_path, excluded_apps=settings.excluded_apps)
    display = LogDisplay(enabled=settings.popup_enabled)
    coordinator = CaptureCoordinator(promote_scanner_on_row=settings.promote_scanner_on_row)

    poller = DatabasePoller(
        store,
        archive,
        display,
        permissions,
        polling=poller_polling_config(settings),
        row_limit=settings.store_row_limit,
        fetch_buffer=settings.store_fetch_buffer,
        known_ids_ceiling=settings.known_ids_ceiling,
        app_names=app_names,
    )

    scanner = None
    if settings.scanner_enabled and tree is not None:
        scanner = BannerScanner(
            tree,
            display,
            permissions,
            polling=scanner_polling_config(settings),
            seen_ttl=settings.banner_seen_ttl_seconds,
            text_depth=settings.banner_text_depth,
        )

    coordinator.attach(poller=poller, scanner=scanner)
    return Pipeline(
        archive=archive,
        display=display,
        coordinator=coordinator,
        poller=poller,
        scanner=scanner,
    )


def purge_expired(archive: NotificationArchive, retention_days: int | None) -> int:
    """Apply the retention window to the archive."""
    if retention_days is None:
        return 0
    cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    return archive.delete_older_than(cutoff)


async def main() -> None:
    """Main application entry point."""
    setup_logging()
    log = get_logger("notifydeck.main")

    settings = get_settings()
    log.info(
        "starting_notifydeck",
        environment=settings.environment,
        scanner_enabled=settings.scanner_enabled,
    )

    if sys.platform != "darwin":
        log.error("unsupported_platform", platform=sys.platform)
        return

    from notifydeck.platform.macos import AXTree, BundleNames, MacPermissions

    store = NotificationStore(settings.notification_db_path)
    permissions = MacPermissions(store)
    pipeline = build_pipeline(settings, store, permissions, AXTree(), BundleNames())

    await asyncio.to_thread(pipeline.archive.initialize)
    purged = await asyncio.to_thread(purge_expired, pipeline.archive, settings.retention_days)
    log.info("archive_ready", path=str(pipeline.archive.path), purged=purged)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    poller_started = await pipeline.poller.start()
    if not poller_started:
        log.warning(
            "poller_not_started",
            status=pipeline.poller.status.value,
            hint="grant Full Disk Access and restart",
        )

    scanner_started = False
    if pipeline.scanner is not None:
        scanner_started = await pipeline.scanner.start()
        if not scanner_started:
            log.warning("scanner_not_started", hint="grant Accessibility access and restart")

    if not poller_started and not scanner_started:
        log.error("no_detector_running")
        return

    try:
        await stop_event.wait()
        log.info("shutdown_requested")
    finally:
        await pipeline.poller.stop()
        if pipeline.scanner is not None:
            await pipeline.scanner.stop()
        await pipeline.poller.scheduler.wait_for_tick()
        await pipeline.poller.wait_for_pending()
        log.info("notifydeck_stopped", archived=pipeline.archive.count())


def run() -> None:
    """Run the application."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
