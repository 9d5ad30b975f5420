"""Notification capture pipeline for NotifyDeck.

This package provides:
- AdaptiveScheduler: activity-driven polling timer (idle/active/cooldown)
- decode_payload: multi-strategy decoder for notification payload blobs
- is_banner: geometry classifier for transient banner windows
- DatabasePoller: diffs the OS notification database for new rows
- BannerScanner: watches on-screen banners through the accessibility tree
- CaptureCoordinator: cross-promotes the two detectors
"""
