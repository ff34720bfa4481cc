# =============================================================================
# medbuddy_core/offline/merge.py
# Local/Remote Snapshot Reconciliation
# =============================================================================
"""
Union-then-dedupe merge of a local snapshot with the remote one.

Per collection, by record id:
- only local   -> kept (not yet pushed)
- only remote  -> adopted (created elsewhere)
- both         -> the local copy wins

Deletions are not tracked, so an id missing on one side always means "not
created there yet". A record deleted here but still present remotely comes
back on the next merge.

Output order: local records in their local order, followed by remote-only
records in remote order.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List

from medbuddy_core.models import COLLECTIONS, Snapshot


@dataclass
class MergeReport:
    """What a merge did, per collection."""
    adopted: Dict[str, int] = field(default_factory=dict)
    local_only: Dict[str, int] = field(default_factory=dict)
    local_wins: Dict[str, int] = field(default_factory=dict)

    @property
    def remote_changed_local(self) -> bool:
        """True when remote-only records were pulled in."""
        return any(self.adopted.values())

    def summary(self) -> str:
        parts = []
        for name in COLLECTIONS:
            parts.append(
                f"{name}: +{self.adopted.get(name, 0)} remote, "
                f"{self.local_only.get(name, 0)} local-only, "
                f"{self.local_wins.get(name, 0)} overridden"
            )
        return "; ".join(parts)


def merge_records(
    local: List[Dict[str, Any]],
    remote: List[Dict[str, Any]],
) -> tuple:
    """
    Merge one collection.

    Returns:
        (merged records, adopted count, local-only count, local-wins count)
    """
    merged: List[Dict[str, Any]] = []
    local_ids = set()
    for record in local:
        record_id = record.get("id")
        if record_id in local_ids:
            continue
        local_ids.add(record_id)
        merged.append(dict(record))

    remote_by_id = {}
    for record in remote:
        remote_by_id.setdefault(record.get("id"), record)

    adopted = 0
    for record_id, record in remote_by_id.items():
        if record_id not in local_ids:
            merged.append(dict(record))
            adopted += 1

    local_only = len(local_ids - remote_by_id.keys())
    local_wins = sum(
        1 for record in merged
        if record.get("id") in remote_by_id
        and record.get("id") in local_ids
        and remote_by_id[record.get("id")] != record
    )
    return merged, adopted, local_only, local_wins


def merge_snapshots(local: Snapshot, remote: Snapshot) -> tuple:
    """
    Merge every collection of two snapshots.

    Returns:
        (merged Snapshot, MergeReport)
    """
    report = MergeReport()
    collections = {}
    for name in COLLECTIONS:
        merged, adopted, local_only, local_wins = merge_records(local.get(name), remote.get(name))
        collections[name] = merged
        report.adopted[name] = adopted
        report.local_only[name] = local_only
        report.local_wins[name] = local_wins
    return Snapshot.from_collections(collections), report


def _by_id(records: List[Dict[str, Any]]) -> Dict[Any, Dict[str, Any]]:
    return {record.get("id"): record for record in records}


def same_content(first: Snapshot, second: Snapshot) -> bool:
    """
    True when both snapshots hold the same records, ignoring their order.

    Devices that created records in a different order produce merged lists
    in a different order; they still agree if every id maps to the same record.
    """
    for name in COLLECTIONS:
        left, right = first.get(name), second.get(name)
        if len(left) != len(right) or _by_id(left) != _by_id(right):
            return False
    return True
