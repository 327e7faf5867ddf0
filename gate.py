# gate.py
from __future__ import annotations

from typing import Dict, Iterable, Optional

from owners.annotations import (
    ALLOW_FROM_SELF,
    INBOUND_NAMESPACE_LABELS,
    MICROSEGMENTATION,
    OUTBOUND_NAMESPACE_LABELS,
    flag,
)
from owners.kinds import KINDS, Request, controller_of


def _annotations(obj: Optional[dict]) -> Dict[str, str]:
    return ((obj or {}).get("metadata", {}) or {}).get("annotations", {}) or {}


def admit_create(obj: dict) -> bool:
    """A new owner matters only once it opts in."""
    return flag(_annotations(obj), MICROSEGMENTATION)


def admit_update(old: dict, new: dict, label_lists: bool = False) -> bool:
    """Admit when either boolean flag flipped.

    Label-list edits alone are not admitted unless label_lists is set;
    they are picked up by the next admitted event or resync.
    """
    old_ann = _annotations(old)
    new_ann = _annotations(new)
    for key in (MICROSEGMENTATION, ALLOW_FROM_SELF):
        if flag(old_ann, key) != flag(new_ann, key):
            return True
    if label_lists:
        for key in (INBOUND_NAMESPACE_LABELS, OUTBOUND_NAMESPACE_LABELS):
            if old_ann.get(key) != new_ann.get(key):
                return True
    return False


def admit_delete(obj: dict) -> bool:
    # the reconcile finds the owner gone and stops
    return True


def owner_request(policy: dict, kinds: Iterable[str] = KINDS) -> Optional[Request]:
    """Owner to re-enqueue when a child policy changes, if it is one of ours."""
    ref = controller_of(policy)
    if ref is None or ref.get("kind") not in kinds:
        return None
    kind = KINDS[ref["kind"]]
    ns = ((policy.get("metadata", {}) or {}).get("namespace") or "") if kind.namespaced else ""
    return Request(kind.kind, ns, ref.get("name", ""))
