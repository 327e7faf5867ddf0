# reconcile.py
from __future__ import annotations

import copy
import logging
from typing import List, Optional, Tuple

from config import DesiredPolicySet
from k8s import NotFound, Scope
from owners.annotations import ANNOTATION_BASE
from owners.kinds import Owner, controller_of

MANAGED_LABEL = f"{ANNOTATION_BASE}/managed"
OWNER_KIND_LABEL = f"{ANNOTATION_BASE}/owner-kind"

PolicyId = Tuple[str, str]  # (namespace, name)

_log = logging.getLogger("controller")


class ReconcilePlan(dict):
    """A small, json-serializable planning object."""


def pid(pol: dict) -> PolicyId:
    meta = pol.get("metadata", {}) or {}
    return (meta.get("namespace", ""), meta.get("name", ""))


def normalize(pol: dict) -> dict:
    """The parts of a policy we own, in a form fit for comparison.

    The API server drops empty rule lists and adds fields we never set,
    so only podSelector/ingress/egress, the controller reference and
    our labels are compared.
    """
    meta = pol.get("metadata", {}) or {}
    spec = pol.get("spec", {}) or {}
    labels = meta.get("labels", {}) or {}
    ref = controller_of(pol) or {}
    return {
        "podSelector": spec.get("podSelector") or {},
        "ingress": spec.get("ingress") or [],
        "egress": spec.get("egress") or [],
        "owner": (ref.get("kind"), ref.get("name"), ref.get("uid")),
        "labels": {k: labels.get(k) for k in (MANAGED_LABEL, OWNER_KIND_LABEL)},
    }


def owned(pol: dict, owner: Owner) -> dict:
    """Attach the controller reference and managed labels to a manifest."""
    p = copy.deepcopy(pol)
    meta = p.setdefault("metadata", {})
    labels = meta.setdefault("labels", {})
    labels[MANAGED_LABEL] = "true"
    labels[OWNER_KIND_LABEL] = owner.kind.kind
    meta["ownerReferences"] = [owner.controller_reference()]
    return p


def _controlled_by(pol: dict, owner: Owner) -> bool:
    ref = controller_of(pol)
    if ref is None:
        return False
    return ref.get("kind") == owner.kind.kind and ref.get("uid") == owner.uid


def _foreign(pol: dict, owner: Owner) -> bool:
    return controller_of(pol) is not None and not _controlled_by(pol, owner)


def create_or_update(
    store,
    owner: Owner,
    desired: dict,
    scope: Optional[Scope] = None,
    log: logging.Logger = _log,
) -> str:
    """Make one child match desired. Returns created, updated, unchanged or foreign.

    A same-named policy controlled by another owner is left as it is.
    """
    body = owned(desired, owner)
    ns, name = pid(body)
    try:
        actual = store.get_policy(ns, name, scope=scope)
    except NotFound:
        store.create_policy(ns, body, scope=scope)
        log.info("%s: created networkpolicy %s/%s", owner.request, ns, name)
        return "created"

    if _foreign(actual, owner):
        log.warning("%s: not applying networkpolicy %s/%s, controlled by another owner", owner.request, ns, name)
        return "foreign"

    if normalize(actual) == normalize(body):
        return "unchanged"

    meta = actual.get("metadata", {}) or {}
    body["metadata"]["resourceVersion"] = meta.get("resourceVersion")
    # keep labels other tools put on the object
    body["metadata"]["labels"] = {**(meta.get("labels") or {}), **body["metadata"]["labels"]}
    store.replace_policy(ns, name, body, scope=scope)
    log.info("%s: updated networkpolicy %s/%s", owner.request, ns, name)
    return "updated"


def delete(
    store,
    owner: Owner,
    name: str,
    namespace: str,
    scope: Optional[Scope] = None,
    log: logging.Logger = _log,
    owned_only: bool = False,
) -> str:
    """Remove one child. Returns deleted, absent or foreign.

    Absent already satisfies the desired state. A same-named policy
    controlled by someone else is not ours to remove. With owned_only,
    a policy without a controller reference is not ours either.
    """
    try:
        actual = store.get_policy(namespace, name, scope=scope)
    except NotFound:
        return "absent"

    if _foreign(actual, owner) or (owned_only and not _controlled_by(actual, owner)):
        log.info("%s: leaving networkpolicy %s/%s, controlled by another owner", owner.request, namespace, name)
        return "foreign"

    uid = (actual.get("metadata", {}) or {}).get("uid")
    try:
        store.delete_policy(namespace, name, uid=uid, scope=scope)
    except NotFound:
        return "absent"
    log.info("%s: deleted networkpolicy %s/%s", owner.request, namespace, name)
    return "deleted"


def plan_reconcile(store, owner: Owner, desired: DesiredPolicySet, scope: Optional[Scope] = None) -> ReconcilePlan:
    """Compute what the reconciler *would* do, without creating/updating/deleting anything."""
    to_create: List[str] = []
    to_update: List[str] = []
    to_delete: List[str] = []
    to_skip: List[str] = []

    for name, ns, manifest in desired.candidates(owner):
        try:
            actual = store.get_policy(ns, name, scope=scope)
        except NotFound:
            actual = None

        if manifest is not None:
            if actual is None:
                to_create.append(name)
            elif _foreign(actual, owner):
                to_skip.append(name)
            elif normalize(actual) != normalize(owned(manifest, owner)):
                to_update.append(name)
        elif actual is not None:
            if not _foreign(actual, owner):
                to_delete.append(name)

    for name, ns in desired.stale(owner):
        try:
            actual = store.get_policy(ns, name, scope=scope)
        except NotFound:
            continue
        if _controlled_by(actual, owner):
            to_delete.append(name)

    return ReconcilePlan(
        owner=str(owner.request),
        namespace=owner.policy_namespace,
        counts={
            "create": len(to_create),
            "update": len(to_update),
            "delete": len(to_delete),
        },
        create=to_create,
        update=to_update,
        delete=to_delete,
        foreign=to_skip,
    )


def print_plan(plan: ReconcilePlan) -> None:
    counts = plan.get("counts", {})
    print(
        f"[plan] owner={plan.get('owner')} namespace={plan.get('namespace')} "
        f"create={counts.get('create', 0)} update={counts.get('update', 0)} delete={counts.get('delete', 0)}"
    )
    for k in ("create", "update", "delete", "foreign"):
        items = plan.get(k, []) or []
        if not items:
            continue
        print(f"[plan] {k}:")
        for name in items:
            print(f"  - {name}")
