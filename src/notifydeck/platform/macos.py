"""macOS bindings: permission checks and the accessibility tree.

PyObjC is imported lazily inside each call so this module can be imported
(and the rest of the package tested) on machines without it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from notifydeck.capture.geometry import Rect, ScreenSize
from notifydeck.capture.store import NotificationStore
from notifydeck.logging import get_logger

log = get_logger("notifydeck.platform.macos")

# AXError.success
_AX_SUCCESS = 0

# Tree changes that usually mean a banner appeared or changed
_OBSERVED_NOTIFICATIONS = (
    "AXCreated",
    "AXUIElementDestroyed",
    "AXFocusedUIElementChanged",
    "AXWindowCreated",
    "AXValueChanged",
)


class MacPermissions:
    """Full Disk Access (inferred from the store) and Accessibility checks."""

    def __init__(self, store: NotificationStore) -> None:
        self._store = store

    def has_read_access(self) -> bool:
        return self._store.is_readable()

    def has_accessibility_access(self) -> bool:
        from ApplicationServices import AXIsProcessTrusted

        return bool(AXIsProcessTrusted())

    def request_accessibility_access(self) -> None:
        from ApplicationServices import (
            AXIsProcessTrustedWithOptions,
            kAXTrustedCheckOptionPrompt,
        )

        AXIsProcessTrustedWithOptions({kAXTrustedCheckOptionPrompt: True})
        log.info("accessibility_access_requested")


class BundleNames:
    """``CFBundleName`` of installed applications, cached per identifier."""

    def __init__(self) -> None:
        self._cache: dict[str, str | None] = {}
        self._lock = threading.Lock()

    def __call__(self, bundle_id: str) -> str | None:
        with self._lock:
            if bundle_id in self._cache:
                return self._cache[bundle_id]
        name = self._lookup(bundle_id)
        with self._lock:
            self._cache[bundle_id] = name
        return name

    def _lookup(self, bundle_id: str) -> str | None:
        from AppKit import NSWorkspace
        from Foundation import NSBundle

        try:
            url = NSWorkspace.sharedWorkspace().URLForApplicationWithBundleIdentifier_(bundle_id)
            if url is None:
                return None
            bundle = NSBundle.bundleWithURL_(url)
            if bundle is None:
                return None
            name = bundle.objectForInfoDictionaryKey_("CFBundleName")
        except Exception as exc:
            log.debug("bundle_name_lookup_failed", bundle_id=bundle_id, error=str(exc))
            return None
        return str(name) if name else None


def _copy_attribute(element: Any, attribute: str) -> Any | None:
    from ApplicationServices import AXUIElementCopyAttributeValue

    err, value = AXUIElementCopyAttributeValue(element, attribute, None)
    if err != _AX_SUCCESS:
        return None
    return value


class AXTree:
    """Accessibility tree of another process, via ApplicationServices.

    Frames are converted from the top-left origin the accessibility API
    reports to the bottom-left origin the banner classifier expects.
    """

    def __init__(self) -> None:
        self._observer: Any | None = None
        self._run_loop: Any | None = None
        self._thread: threading.Thread | None = None

    def find_process(self, bundle_id: str) -> int | None:
        from AppKit import NSWorkspace

        for app in NSWorkspace.sharedWorkspace().runningApplications():
            if app.bundleIdentifier() == bundle_id:
                return int(app.processIdentifier())
        return None

    def windows(self, pid: int) -> list[Any] | None:
        from ApplicationServices import AXUIElementCreateApplication

        value = _copy_attribute(AXUIElementCreateApplication(pid), "AXWindows")
        return list(value) if value is not None else None

    def frame(self, element: Any) -> Rect | None:
        from ApplicationServices import (
            AXValueGetValue,
            kAXValueCGPointType,
            kAXValueCGSizeType,
        )

        position = _copy_attribute(element, "AXPosition")
        size = _copy_attribute(element, "AXSize")
        if position is None or size is None:
            return None
        ok_point, point = AXValueGetValue(position, kAXValueCGPointType, None)
        ok_size, extent = AXValueGetValue(size, kAXValueCGSizeType, None)
        if not ok_point or not ok_size:
            return None

        screen = self.screen_size()
        return Rect(
            x=float(point.x),
            y=screen.height - float(point.y) - float(extent.height),
            width=float(extent.width),
            height=float(extent.height),
        )

    def texts(self, element: Any) -> list[str]:
        found: list[str] = []
        for attribute in ("AXValue", "AXTitle"):
            value = _copy_attribute(element, attribute)
            if isinstance(value, str) and value:
                found.append(str(value))
        return found

    def children(self, element: Any) -> list[Any] | None:
        value = _copy_attribute(element, "AXChildren")
        return list(value) if value is not None else None

    def screen_size(self) -> ScreenSize:
        from AppKit import NSScreen

        screen = NSScreen.mainScreen()
        if screen is None:
            return ScreenSize(0.0, 0.0)
        frame = screen.frame()
        return ScreenSize(float(frame.size.width), float(frame.size.height))

    # ------------------------------------------------------------------
    # Push events
    # ------------------------------------------------------------------

    def observe(self, pid: int, callback: Callable[[], None]) -> bool:
        """Register an AXObserver on a dedicated run-loop thread."""
        if self._thread is not None:
            self.unobserve()

        ready = threading.Event()
        result: dict[str, bool] = {"ok": False}
        self._thread = threading.Thread(
            target=self._run_observer,
            args=(pid, callback, ready, result),
            name="ax-observer",
            daemon=True,
        )
        self._thread.start()
        ready.wait(timeout=5.0)
        if not result["ok"]:
            self._thread = None
        return result["ok"]

    def unobserve(self) -> None:
        if self._run_loop is not None:
            from CoreFoundation import CFRunLoopStop

            CFRunLoopStop(self._run_loop)
        if self._thread is not None:
            self._thread.join(timeout=2.0)
        self._observer = None
        self._run_loop = None
        self._thread = None

    def _run_observer(
        self,
        pid: int,
        callback: Callable[[], None],
        ready: threading.Event,
        result: dict[str, bool],
    ) -> None:
        from ApplicationServices import (
            AXObserverAddNotification,
            AXObserverCreate,
            AXObserverGetRunLoopSource,
            AXUIElementCreateApplication,
        )
        from CoreFoundation import (
            CFRunLoopAddSource,
            CFRunLoopGetCurrent,
            CFRunLoopRun,
            kCFRunLoopDefaultMode,
        )

        def on_event(observer: Any, element: Any, notification: Any, refcon: Any) -> None:
            try:
                callback()
            except Exception as exc:
                log.warning("tree_event_callback_failed", error=str(exc))

        try:
            err, observer = AXObserverCreate(pid, on_event, None)
            if err != _AX_SUCCESS or observer is None:
                log.info("ax_observer_create_failed", pid=pid, error=err)
                return

            app = AXUIElementCreateApplication(pid)
            for name in _OBSERVED_NOTIFICATIONS:
                AXObserverAddNotification(observer, app, name, None)

            self._observer = observer
            self._run_loop = CFRunLoopGetCurrent()
            CFRunLoopAddSource(
                self._run_loop, AXObserverGetRunLoopSource(observer), kCFRunLoopDefaultMode
            )
            result["ok"] = True
        except Exception as exc:
            log.warning("ax_observer_setup_failed", pid=pid, error=str(exc))
            return
        finally:
            ready.set()

        CFRunLoopRun()
        log.debug("ax_observer_stopped", pid=pid)
