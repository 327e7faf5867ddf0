from __future__ import annotations

import copy
import itertools
from typing import Dict, List, Optional, Tuple

import pytest

from k8s import NotFound, StoreError
from owners.annotations import ANNOTATION_BASE


def ann(**kwargs) -> dict:
    """ann(microsegmentation="true") -> {"<base>/microsegmentation": "true"}"""
    return {f"{ANNOTATION_BASE}/{k.replace('_', '-')}": v for k, v in kwargs.items()}


def namespace_obj(name: str, annotations: Optional[dict] = None, uid: str = "", deleting: bool = False) -> dict:
    meta = {"name": name, "uid": uid or f"uid-{name}", "annotations": dict(annotations or {})}
    if deleting:
        meta["deletionTimestamp"] = "2024-01-01T00:00:00Z"
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": meta}


def service_obj(ns: str, name: str, annotations: Optional[dict] = None) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": name,
            "namespace": ns,
            "uid": f"uid-{ns}-{name}",
            "annotations": dict(annotations or {}),
        },
    }


class FakeStore:
    """In-memory stand-in for KubeStore with scripted failures."""

    def __init__(self):
        self.owners: Dict[Tuple[str, str, str], dict] = {}
        self.policies: Dict[Tuple[str, str], dict] = {}
        self.calls: List[Tuple[str, ...]] = []
        self.failures: Dict[str, List[Exception]] = {}
        self._rv = itertools.count(1)

    def add_owner(self, kind: str, obj: dict) -> dict:
        meta = obj["metadata"]
        self.owners[(kind, meta.get("namespace", ""), meta["name"])] = obj
        return obj

    def fail(self, op: str, times: int = 1, error: Optional[Exception] = None) -> None:
        err = error or StoreError(f"{op}: 500 Internal Server Error", status=500)
        self.failures.setdefault(op, []).extend([err] * times)

    def _maybe_fail(self, op: str) -> None:
        pending = self.failures.get(op)
        if pending:
            raise pending.pop(0)

    def writes(self) -> List[Tuple[str, ...]]:
        return [c for c in self.calls if c[0] in ("create", "replace", "delete")]

    def get_owner(self, kind, namespace, name, scope=None) -> dict:
        self.calls.append(("get_owner", kind.kind, namespace, name))
        self._maybe_fail("get_owner")
        ns = namespace if kind.namespaced else ""
        try:
            return copy.deepcopy(self.owners[(kind.kind, ns, name)])
        except KeyError:
            raise NotFound(f"get {kind.kind} {name}: not found")

    def get_policy(self, namespace, name, scope=None) -> dict:
        self.calls.append(("get", namespace, name))
        self._maybe_fail("get")
        try:
            return copy.deepcopy(self.policies[(namespace, name)])
        except KeyError:
            raise NotFound(f"get networkpolicy {namespace}/{name}: not found")

    def create_policy(self, namespace, body, scope=None) -> None:
        name = body["metadata"]["name"]
        self.calls.append(("create", namespace, name))
        self._maybe_fail("create")
        if (namespace, name) in self.policies:
            raise StoreError(f"create networkpolicy {namespace}/{name}: 409 Conflict", status=409)
        stored = copy.deepcopy(body)
        stored["metadata"]["uid"] = f"uid-np-{namespace}-{name}"
        stored["metadata"]["resourceVersion"] = str(next(self._rv))
        self.policies[(namespace, name)] = stored

    def replace_policy(self, namespace, name, body, scope=None) -> None:
        self.calls.append(("replace", namespace, name))
        self._maybe_fail("replace")
        current = self.policies.get((namespace, name))
        if current is None:
            raise NotFound(f"replace networkpolicy {namespace}/{name}: not found")
        if body["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
            raise StoreError(f"replace networkpolicy {namespace}/{name}: 409 Conflict", status=409)
        stored = copy.deepcopy(body)
        stored["metadata"]["uid"] = current["metadata"]["uid"]
        stored["metadata"]["resourceVersion"] = str(next(self._rv))
        self.policies[(namespace, name)] = stored

    def delete_policy(self, namespace, name, uid=None, scope=None) -> None:
        self.calls.append(("delete", namespace, name))
        self._maybe_fail("delete")
        if self.policies.pop((namespace, name), None) is None:
            raise NotFound(f"delete networkpolicy {namespace}/{name}: not found")


class FakeRecorder:
    def __init__(self):
        self.events: List[Tuple[str, str, str, str]] = []

    def event(self, owner, type_, reason, message) -> None:
        self.events.append((str(owner.request), type_, reason, message))

    def warning(self, owner, reason, message) -> None:
        self.event(owner, "Warning", reason, message)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def recorder() -> FakeRecorder:
    return FakeRecorder()
