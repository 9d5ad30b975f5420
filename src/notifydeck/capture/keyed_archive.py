"""NSKeyedArchiver object-graph resolution on top of ``plistlib``.

A keyed archive is a binary plist whose ``$objects`` table holds every
object once, with references expressed as ``plistlib.UID`` indexes.  This
module rebuilds the graph rooted at ``$top`` into native Python values:
dict, list, str, int, float, bool, bytes, datetime and None.

Two resolvers are provided.  The strict one accepts only the Foundation
classes a notification payload is expected to carry and raises
:class:`ArchiveStructureError` on anything else; the legacy one decodes
unknown classes into plain dictionaries of their (resolved) fields.
"""

from __future__ import annotations

import plistlib
from datetime import datetime
from typing import Any

from notifydeck.utils import from_mac_absolute_time

ARCHIVER_NAME = "NSKeyedArchiver"

# Deeper graphs than this are treated as malformed
MAX_DEPTH = 64

_DICT_CLASSES = frozenset({"NSDictionary", "NSMutableDictionary"})
_ARRAY_CLASSES = frozenset(
    {"NSArray", "NSMutableArray", "NSSet", "NSMutableSet", "NSOrderedSet", "NSMutableOrderedSet"}
)
_STRING_CLASSES = frozenset({"NSString", "NSMutableString"})
_DATA_CLASSES = frozenset({"NSData", "NSMutableData"})


class ArchiveStructureError(ValueError):
    """The payload is not a well-formed keyed archive for the resolver used."""


def unarchive(data: bytes, *, strict: bool = True) -> Any:
    """Decode a keyed archive into native Python values.

    Raises:
        ArchiveStructureError: On a malformed archive, or (strict mode) a
            class outside the allow-list.
    """
    try:
        archive = plistlib.loads(data, fmt=plistlib.FMT_BINARY)
    except Exception as exc:
        raise ArchiveStructureError(f"not a binary plist: {exc}") from exc

    if not isinstance(archive, dict) or archive.get("$archiver") != ARCHIVER_NAME:
        raise ArchiveStructureError("missing $archiver marker")

    objects = archive.get("$objects")
    top = archive.get("$top")
    if not isinstance(objects, list) or not isinstance(top, dict) or not top:
        raise ArchiveStructureError("missing $objects or $top")

    root = top.get("root")
    if root is None:
        root = next(iter(top.values()))

    try:
        return _Resolver(objects, strict=strict).resolve(root)
    except ArchiveStructureError:
        raise
    except (OverflowError, TypeError, ValueError) as exc:
        raise ArchiveStructureError(f"malformed value: {exc}") from exc


class _Resolver:
    def __init__(self, objects: list[Any], *, strict: bool) -> None:
        self._objects = objects
        self._strict = strict
        self._cache: dict[int, Any] = {}
        self._in_progress: set[int] = set()

    def resolve(self, value: Any, depth: int = 0) -> Any:
        if depth > MAX_DEPTH:
            raise ArchiveStructureError("object graph too deep")
        if isinstance(value, plistlib.UID):
            return self._resolve_uid(value.data, depth)
        if isinstance(value, list):
            return [self.resolve(item, depth + 1) for item in value]
        if isinstance(value, dict) and "$class" not in value:
            return {str(k): self.resolve(v, depth + 1) for k, v in value.items()}
        if isinstance(value, dict):
            return self._resolve_instance(value, depth)
        return value

    def _resolve_uid(self, index: int, depth: int) -> Any:
        if index in self._cache:
            return self._cache[index]
        if not 0 <= index < len(self._objects):
            raise ArchiveStructureError(f"reference {index} out of range")
        if index in self._in_progress:
            # Cycles are broken rather than followed
            return None
        raw = self._objects[index]
        if raw == "$null":
            return None

        self._in_progress.add(index)
        try:
            resolved = self.resolve(raw, depth + 1)
        finally:
            self._in_progress.discard(index)
        self._cache[index] = resolved
        return resolved

    def _class_name(self, instance: dict[str, Any]) -> str:
        ref = instance.get("$class")
        if not isinstance(ref, plistlib.UID) or not 0 <= ref.data < len(self._objects):
            raise ArchiveStructureError("instance without a valid $class")
        meta = self._objects[ref.data]
        if not isinstance(meta, dict) or not isinstance(meta.get("$classname"), str):
            raise ArchiveStructureError("class entry without $classname")
        return str(meta["$classname"])

    def _resolve_instance(self, instance: dict[str, Any], depth: int) -> Any:
        name = self._class_name(instance)

        if name in _DICT_CLASSES:
            keys = instance.get("NS.keys", [])
            values = instance.get("NS.objects", [])
            if not isinstance(keys, list) or not isinstance(values, list):
                raise ArchiveStructureError(f"{name} without key/value arrays")
            if len(keys) != len(values):
                raise ArchiveStructureError(f"{name} key/value length mismatch")
            result: dict[str, Any] = {}
            for key_ref, value_ref in zip(keys, values):
                key = self.resolve(key_ref, depth + 1)
                result[str(key)] = self.resolve(value_ref, depth + 1)
            return result

        if name in _ARRAY_CLASSES:
            items = instance.get("NS.objects", [])
            if not isinstance(items, list):
                raise ArchiveStructureError(f"{name} without an object array")
            return [self.resolve(item, depth + 1) for item in items]

        if name in _STRING_CLASSES:
            text = instance.get("NS.string")
            if text is None and "NS.bytes" in instance:
                text = bytes(instance["NS.bytes"]).decode("utf-8", errors="replace")
            return "" if text is None else str(text)

        if name in _DATA_CLASSES:
            payload = instance.get("NS.data", b"")
            if isinstance(payload, plistlib.UID):
                payload = self.resolve(payload, depth + 1)
            return bytes(payload or b"")

        if name == "NSDate":
            seconds = instance.get("NS.time")
            if isinstance(seconds, plistlib.UID):
                seconds = self.resolve(seconds, depth + 1)
            return _date_value(seconds)

        if name == "NSURL":
            relative = self.resolve(instance.get("NS.relative"), depth + 1)
            base = self.resolve(instance.get("NS.base"), depth + 1)
            return f"{base}{relative}" if base else relative

        if name == "NSNull":
            return None

        if self._strict:
            raise ArchiveStructureError(f"class {name} not allowed")

        return {
            key: self.resolve(value, depth + 1)
            for key, value in instance.items()
            if key != "$class"
        }


def _date_value(seconds: Any) -> datetime | None:
    if not isinstance(seconds, int | float):
        return None
    try:
        return from_mac_absolute_time(float(seconds))
    except (OverflowError, ValueError):
        # Outside the datetime range
        return None
