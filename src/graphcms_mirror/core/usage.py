from collections.abc import Iterable
from typing import Any

from graphcms_mirror.config import ASSET_TYPE_NAME


class AssetUsageTracker:
    """Remote ids of assets referenced by any non-asset node seen in the current pass."""

    def __init__(self) -> None:
        self._used: set[str] = set()

    def __contains__(self, remote_id: object) -> bool:
        return remote_id in self._used

    def add(self, remote_id: str) -> None:
        self._used.add(remote_id)

    def register_reference(self, value: Any) -> None:
        """Record a direct asset reference field, single or list valued."""
        for ref in _as_list(value):
            if isinstance(ref, dict) and ref.get("remoteId"):
                self._used.add(ref["remoteId"])

    def register_rich_text(self, value: Any) -> None:
        """Record asset entries of a rich-text value's ``references`` list."""
        if not isinstance(value, dict):
            return
        for ref in _as_list(value.get("references")):
            if isinstance(ref, dict) and ref.get("remoteTypeName") == ASSET_TYPE_NAME and ref.get("remoteId"):
                self._used.add(ref["remoteId"])

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._used)


def _as_list(value: Any) -> Iterable[Any]:
    if value is None:
        return ()
    if isinstance(value, list):
        return value
    return (value,)
