# owners/kinds.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, NamedTuple, Optional

from owners.annotations import ALLOW_FROM_SELF, MICROSEGMENTATION, flag


@dataclass(frozen=True)
class OwnerKind:
    kind: str
    api_version: str
    namespaced: bool
    controller_name: str


NAMESPACE = OwnerKind("Namespace", "v1", namespaced=False, controller_name="namespace-controller")
SERVICE = OwnerKind("Service", "v1", namespaced=True, controller_name="service-controller")

KINDS: Dict[str, OwnerKind] = {k.kind: k for k in (NAMESPACE, SERVICE)}


class Request(NamedTuple):
    """Identity of an owner that needs re-evaluation."""

    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


def _meta(obj: dict) -> dict:
    return (obj or {}).get("metadata", {}) or {}


@dataclass
class Owner:
    """A watched object whose annotations drive the child policies.

    Built from the camelCase dict form of a Namespace or Service.
    """

    kind: OwnerKind
    name: str
    namespace: str = ""
    uid: str = ""
    annotations: Dict[str, str] = field(default_factory=dict)
    being_deleted: bool = False

    @classmethod
    def from_dict(cls, kind: OwnerKind, obj: dict) -> "Owner":
        meta = _meta(obj)
        name = meta.get("name")
        if not name:
            raise ValueError(f"{kind.kind} object without metadata.name")
        return cls(
            kind=kind,
            name=name,
            namespace=(meta.get("namespace") or "") if kind.namespaced else "",
            uid=meta.get("uid") or "",
            annotations=dict(meta.get("annotations") or {}),
            being_deleted=bool(meta.get("deletionTimestamp")),
        )

    @property
    def request(self) -> Request:
        return Request(self.kind.kind, self.namespace, self.name)

    @property
    def policy_namespace(self) -> str:
        # a Namespace owns policies inside itself
        return self.namespace if self.kind.namespaced else self.name

    @property
    def microsegmentation(self) -> bool:
        return flag(self.annotations, MICROSEGMENTATION)

    @property
    def allow_from_self(self) -> bool:
        return flag(self.annotations, ALLOW_FROM_SELF)

    def controller_reference(self) -> dict:
        return {
            "apiVersion": self.kind.api_version,
            "kind": self.kind.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": False,
        }

    def object_reference(self) -> dict:
        ref = {
            "apiVersion": self.kind.api_version,
            "kind": self.kind.kind,
            "name": self.name,
            "uid": self.uid,
        }
        if self.kind.namespaced:
            ref["namespace"] = self.namespace
        return ref


def request_for(kind: OwnerKind, obj: dict) -> Optional[Request]:
    meta = _meta(obj)
    name = meta.get("name")
    if not name:
        return None
    ns = (meta.get("namespace") or "") if kind.namespaced else ""
    return Request(kind.kind, ns, name)


def controller_of(obj: dict) -> Optional[dict]:
    """Return the ownerReference flagged controller=true, if any."""
    for ref in _meta(obj).get("ownerReferences") or []:
        if ref.get("controller"):
            return ref
    return None
