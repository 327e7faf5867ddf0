# policies/isolation.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from policies.rules import namespace_selector

DENY_BY_DEFAULT = "deny-by-default"
ALLOW_FROM_SELF = "allow-from-self"
INGRESS_FROM_NAMESPACES = "ingress-from-namespaces"
EGRESS_TO_NAMESPACES = "egress-to-namespaces"


def network_policy(
    name: str,
    ns: str,
    ingress: Optional[List[Dict]] = None,
    egress: Optional[List[Dict]] = None,
) -> Dict[str, Any]:
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": {
            "name": name,
            "namespace": ns,
        },
        "spec": {
            # empty podSelector: every pod in the namespace
            "podSelector": {},
            "ingress": list(ingress or []),
            "egress": list(egress or []),
        },
    }


def deny_by_default(ns: str) -> Dict[str, Any]:
    """No rules at all: once selected, pods accept nothing not allowed elsewhere."""
    return network_policy(DENY_BY_DEFAULT, ns)


def allow_from_self(ns: str, self_name: str) -> Dict[str, Any]:
    """Admit traffic from any namespace labelled name=<self_name>."""
    return network_policy(
        ALLOW_FROM_SELF,
        ns,
        ingress=[{"from": [{"namespaceSelector": namespace_selector([("name", self_name)])}]}],
    )
