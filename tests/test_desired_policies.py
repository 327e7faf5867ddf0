from __future__ import annotations

import json
import logging

import pytest

from config import desired_policies, scoped_policy_name
from conftest import ann, namespace_obj, service_obj
from owners.kinds import NAMESPACE, SERVICE, Owner

log = logging.getLogger("test")


def _ns(name: str = "ns-a", **annotations) -> Owner:
    return Owner.from_dict(NAMESPACE, namespace_obj(name, ann(**annotations)))


@pytest.mark.parametrize("value", [None, "false", "True", "yes"])
def test_nothing_desired_unless_microsegmentation_true(value) -> None:
    kwargs = {"allow_from_self": "true", "inbound_namespace_labels": "team=platform"}
    if value is not None:
        kwargs["microsegmentation"] = value
    desired = desired_policies(_ns(**kwargs), log)
    assert desired.present() == []


def test_deny_by_default_always_present_when_enabled() -> None:
    desired = desired_policies(_ns(microsegmentation="true"), log)
    assert desired.deny == {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": {"name": "deny-by-default", "namespace": "ns-a"},
        "spec": {"podSelector": {}, "ingress": [], "egress": []},
    }


def test_allow_from_self_needs_both_flags() -> None:
    assert desired_policies(_ns(microsegmentation="true"), log).allow_self is None
    assert desired_policies(_ns(allow_from_self="true"), log).allow_self is None
    assert desired_policies(_ns(microsegmentation="true", allow_from_self="true"), log).allow_self is not None


def test_example_namespace_scenario() -> None:
    owner = _ns(
        "ns-a",
        microsegmentation="true",
        allow_from_self="true",
        inbound_namespace_labels="team=platform,env=prod",
    )
    desired = desired_policies(owner, log)

    assert desired.deny["spec"]["ingress"] == []
    assert desired.deny["spec"]["egress"] == []

    assert desired.allow_self["metadata"]["name"] == "allow-from-self"
    assert desired.allow_self["spec"]["ingress"] == [
        {"from": [{"namespaceSelector": {"matchLabels": {"name": "ns-a"}}}]}
    ]

    assert desired.scoped["metadata"] == {"name": "ingress-from-namespaces", "namespace": "ns-a"}
    assert desired.scoped["spec"]["ingress"] == [
        {"from": [{"namespaceSelector": {"matchLabels": {"team": "platform"}}}]},
        {"from": [{"namespaceSelector": {"matchLabels": {"env": "prod"}}}]},
    ]
    assert desired.scoped["spec"]["egress"] == []


def test_outbound_labels_build_egress_rules() -> None:
    desired = desired_policies(_ns(microsegmentation="true", outbound_namespace_labels="role=db"), log)
    assert desired.scoped["metadata"]["name"] == "egress-to-namespaces"
    assert desired.scoped["spec"]["egress"] == [
        {"to": [{"namespaceSelector": {"matchLabels": {"role": "db"}}}]}
    ]
    assert desired.scoped["spec"]["ingress"] == []


def test_both_directions_share_one_policy_named_for_egress() -> None:
    desired = desired_policies(
        _ns(
            microsegmentation="true",
            inbound_namespace_labels="team=platform",
            outbound_namespace_labels="role=db",
        ),
        log,
    )
    assert desired.scoped["metadata"]["name"] == "egress-to-namespaces"
    assert len(desired.scoped["spec"]["ingress"]) == 1
    assert len(desired.scoped["spec"]["egress"]) == 1


def test_scoped_policy_falls_back_to_owner_name() -> None:
    desired = desired_policies(_ns("billing", microsegmentation="true"), log)
    assert desired.scoped["metadata"]["name"] == "billing"
    assert desired.scoped["spec"] == {"podSelector": {}, "ingress": [], "egress": []}


def test_malformed_labels_degrade_to_no_rules_and_log(caplog) -> None:
    owner = _ns(microsegmentation="true", inbound_namespace_labels="team=platform,foo")
    with caplog.at_level(logging.WARNING, logger="test"):
        desired = desired_policies(owner, logging.getLogger("test"))

    assert desired.scoped["metadata"]["name"] == "ingress-from-namespaces"
    assert desired.scoped["spec"]["ingress"] == []
    assert any("foo" in r.getMessage() for r in caplog.records)


def test_empty_label_annotation_gives_no_rules_and_no_warning(caplog) -> None:
    owner = _ns(microsegmentation="true", inbound_namespace_labels="")
    with caplog.at_level(logging.WARNING, logger="test"):
        desired = desired_policies(owner, logging.getLogger("test"))

    assert desired.scoped["metadata"]["name"] == "ingress-from-namespaces"
    assert desired.scoped["spec"]["ingress"] == []
    assert caplog.records == []


def test_derivation_is_deterministic() -> None:
    kwargs = dict(
        microsegmentation="true",
        allow_from_self="true",
        inbound_namespace_labels="b=2,a=1,c=3",
        outbound_namespace_labels="z=9,y=8",
    )
    first = desired_policies(_ns(**kwargs), log)
    second = desired_policies(_ns(**kwargs), log)
    assert json.dumps(first, sort_keys=False) == json.dumps(second, sort_keys=False)


def test_candidates_cover_every_name_in_fixed_order() -> None:
    owner = _ns(inbound_namespace_labels="team=platform")
    names = [(n, ns, m) for n, ns, m in desired_policies(owner, log).candidates(owner)]
    assert names == [
        ("deny-by-default", "ns-a", None),
        ("allow-from-self", "ns-a", None),
        ("ingress-from-namespaces", "ns-a", None),
    ]


def test_stale_names_are_the_other_scoped_names() -> None:
    owner = _ns(microsegmentation="true", outbound_namespace_labels="role=db")
    assert list(desired_policies(owner, log).stale(owner)) == [("ns-a", "ns-a"), ("ingress-from-namespaces", "ns-a")]

    disabled = _ns()
    assert list(desired_policies(disabled, log).stale(disabled)) == [
        ("ingress-from-namespaces", "ns-a"),
        ("egress-to-namespaces", "ns-a"),
    ]


def test_owner_named_like_a_fixed_policy_is_not_stale() -> None:
    owner = _ns("deny-by-default", inbound_namespace_labels="team=a")
    assert [n for n, _ in desired_policies(owner, log).stale(owner)] == ["egress-to-namespaces"]


def test_scoped_name_without_lists_is_owner_name() -> None:
    assert scoped_policy_name(_ns("ns-x")) == "ns-x"


def test_service_owner_policies_live_in_its_namespace() -> None:
    owner = Owner.from_dict(
        SERVICE,
        service_obj("shop", "web", ann(microsegmentation="true", allow_from_self="true")),
    )
    desired = desired_policies(owner, log)
    assert {p["metadata"]["namespace"] for p in desired.present()} == {"shop"}
    assert desired.scoped["metadata"]["name"] == "web"
    assert desired.allow_self["spec"]["ingress"][0]["from"][0]["namespaceSelector"] == {
        "matchLabels": {"name": "shop"}
    }
