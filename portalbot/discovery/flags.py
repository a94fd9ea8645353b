"""Shared flags that persist across sessions."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class FlagStore:
    """Key/value flags shared by every participant of a farm.

    Values are strings.  The store does no locking: only the authoritative
    participant's handler may call :meth:`set`.  Keys written since the last
    :meth:`drain_changes` are remembered so the host can persist exactly those.
    """

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: Dict[str, str] = {
            str(key): str(value) for key, value in (values or {}).items()
        }
        self._changed: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        text = str(value)
        self._values[key] = text
        self._changed[key] = text

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def snapshot(self) -> Dict[str, str]:
        return dict(self._values)

    def drain_changes(self) -> Dict[str, str]:
        changed, self._changed = self._changed, {}
        return changed


__all__ = ["FlagStore"]
