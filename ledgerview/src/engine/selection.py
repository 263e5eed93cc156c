"""Operator selection of transaction ids for batch clearing.

A pure set of ids. Eligibility is checked by the session before a toggle
reaches this object.
"""

from collections.abc import Iterable


class SelectionSet:
    """Insertion-ordered set of selected transaction ids."""

    def __init__(self, ids: Iterable[str] = ()) -> None:
        # dict keeps insertion order for stable snapshots
        self._ids: dict[str, None] = dict.fromkeys(ids)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __bool__(self) -> bool:
        return bool(self._ids)

    def add(self, tx_id: str) -> None:
        self._ids[tx_id] = None

    def discard(self, tx_id: str) -> None:
        self._ids.pop(tx_id, None)

    def toggle(self, tx_id: str) -> bool:
        """Flip membership of an id.

        Returns:
            True if the id is selected after the call.
        """
        if tx_id in self._ids:
            del self._ids[tx_id]
            return False
        self._ids[tx_id] = None
        return True

    def clear(self) -> None:
        self._ids.clear()

    def remove_all(self, ids: Iterable[str]) -> int:
        """Remove every given id that is present.

        Returns:
            Number of ids removed.
        """
        removed = 0
        for tx_id in ids:
            if self._ids.pop(tx_id, False) is None:
                removed += 1
        return removed

    def as_list(self) -> list[str]:
        """Snapshot of the selected ids, safe to hold across later toggles."""
        return list(self._ids)
