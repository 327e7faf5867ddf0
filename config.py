# config.py
from __future__ import annotations

import logging
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from owners.annotations import (
    INBOUND_NAMESPACE_LABELS,
    OUTBOUND_NAMESPACE_LABELS,
    parse_label_list,
)
from owners.kinds import Owner
from policies.isolation import (
    ALLOW_FROM_SELF,
    DENY_BY_DEFAULT,
    EGRESS_TO_NAMESPACES,
    INGRESS_FROM_NAMESPACES,
    allow_from_self,
    deny_by_default,
    network_policy,
)
from policies.rules import egress_rules, ingress_rules

Candidate = Tuple[str, str, Optional[dict]]  # (name, namespace, manifest or None)


class DesiredPolicySet(NamedTuple):
    deny: Optional[dict] = None
    allow_self: Optional[dict] = None
    scoped: Optional[dict] = None

    def candidates(self, owner: Owner) -> Iterator[Candidate]:
        """
        Every child name this owner may have, in apply order.
        Deny comes first so an allow never lands without the default-deny.
        A None manifest means the child must not exist.
        """
        ns = owner.policy_namespace
        yield DENY_BY_DEFAULT, ns, self.deny
        yield ALLOW_FROM_SELF, ns, self.allow_self
        yield scoped_policy_name(owner), ns, self.scoped

    def stale(self, owner: Owner) -> Iterator[Tuple[str, str]]:
        """Scoped names left over from earlier annotations; none of them should exist."""
        taken = {DENY_BY_DEFAULT, ALLOW_FROM_SELF, scoped_policy_name(owner)}
        for name in scoped_policy_names(owner):
            if name not in taken:
                taken.add(name)
                yield name, owner.policy_namespace

    def present(self) -> List[dict]:
        return [p for p in (self.deny, self.allow_self, self.scoped) if p is not None]


def scoped_policy_names(owner: Owner) -> List[str]:
    return [owner.name, INGRESS_FROM_NAMESPACES, EGRESS_TO_NAMESPACES]


def scoped_policy_name(owner: Owner) -> str:
    # outbound is checked last and wins the name when both are set
    name = owner.name
    if INBOUND_NAMESPACE_LABELS in owner.annotations:
        name = INGRESS_FROM_NAMESPACES
    if OUTBOUND_NAMESPACE_LABELS in owner.annotations:
        name = EGRESS_TO_NAMESPACES
    return name


def _rules(owner: Owner, key: str, build, log: logging.Logger) -> List[Dict]:
    if key not in owner.annotations:
        return []
    parsed = parse_label_list(owner.annotations[key])
    if not parsed.ok:
        log.warning("%s: ignoring annotation %s: %s", owner.request, key, parsed.error)
        return []
    return build(parsed.pairs)


def scoped_policy(owner: Owner, log: logging.Logger) -> dict:
    return network_policy(
        scoped_policy_name(owner),
        owner.policy_namespace,
        ingress=_rules(owner, INBOUND_NAMESPACE_LABELS, ingress_rules, log),
        egress=_rules(owner, OUTBOUND_NAMESPACE_LABELS, egress_rules, log),
    )


def desired_policies(owner: Owner, log: logging.Logger) -> DesiredPolicySet:
    """
    Policies this owner's annotations ask for. Pure: reads nothing but
    the owner, so the same annotations always give the same manifests.
    """
    if not owner.microsegmentation:
        return DesiredPolicySet()

    ns = owner.policy_namespace
    return DesiredPolicySet(
        deny=deny_by_default(ns),
        allow_self=allow_from_self(ns, ns) if owner.allow_from_self else None,
        scoped=scoped_policy(owner, log),
    )
