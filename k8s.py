# k8s.py
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from owners.kinds import NAMESPACE, SERVICE, Owner, OwnerKind


class StoreError(Exception):
    """A failed API call. Always worth retrying later."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFound(StoreError):
    def __init__(self, message: str):
        super().__init__(message, status=404)


class Cancelled(StoreError):
    """The call's scope was cancelled or ran past its deadline."""


def load_kube(log: Optional[logging.Logger] = None) -> None:
    try:
        config.load_incluster_config()
        if log:
            log.info("using in-cluster config")
    except config.ConfigException:
        config.load_kube_config()
        if log:
            log.info("using kubeconfig (local)")


class Scope:
    """Lifetime bound for the store calls of one reconcile.

    Cancelled explicitly, by the shared stop event, or when the
    deadline passes.
    """

    def __init__(self, timeout: Optional[float] = None, stop_event: Optional[threading.Event] = None):
        self._deadline = time.monotonic() + timeout if timeout else None
        self._cancelled = threading.Event()
        self._stop_event = stop_event

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        if self._stop_event is not None and self._stop_event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self, what: str = "call") -> None:
        if self.cancelled:
            raise Cancelled(f"{what}: scope cancelled")


def _call(what: str, fn: Callable[..., Any], scope: Optional[Scope], *args, **kwargs) -> Any:
    """Run one API call inside scope, translating client failures."""
    if scope is not None:
        scope.check(what)
        remaining = scope.remaining()
        if remaining is not None:
            kwargs["_request_timeout"] = remaining
    try:
        res = fn(*args, **kwargs)
    except ApiException as e:
        if e.status == 404:
            raise NotFound(f"{what}: not found") from e
        raise StoreError(f"{what}: {e.status} {e.reason}", status=e.status) from e
    except HTTPError as e:
        raise StoreError(f"{what}: {e}") from e
    # the result may already be applied; the caller retries and converges
    if scope is not None and scope.cancelled:
        raise Cancelled(f"{what}: scope cancelled during call")
    return res


class KubeStore:
    """Reads owners and reads/writes NetworkPolicies through the API server."""

    def __init__(self, core: Optional[client.CoreV1Api] = None, networking: Optional[client.NetworkingV1Api] = None):
        self.core = core or client.CoreV1Api()
        self.networking = networking or client.NetworkingV1Api()

    def _to_dict(self, obj: Any) -> dict:
        # camelCase, same shape as the manifests we build
        return self.core.api_client.sanitize_for_serialization(obj)

    def get_owner(self, kind: OwnerKind, namespace: str, name: str, scope: Optional[Scope] = None) -> dict:
        if kind is NAMESPACE:
            obj = _call(f"get namespace {name}", self.core.read_namespace, scope, name)
        elif kind is SERVICE:
            obj = _call(
                f"get service {namespace}/{name}",
                self.core.read_namespaced_service,
                scope,
                name,
                namespace,
            )
        else:
            raise ValueError(f"unsupported owner kind {kind.kind}")
        return self._to_dict(obj)

    def get_policy(self, namespace: str, name: str, scope: Optional[Scope] = None) -> dict:
        obj = _call(
            f"get networkpolicy {namespace}/{name}",
            self.networking.read_namespaced_network_policy,
            scope,
            name,
            namespace,
        )
        return self._to_dict(obj)

    def create_policy(self, namespace: str, body: dict, scope: Optional[Scope] = None) -> None:
        _call(
            f"create networkpolicy {namespace}/{body['metadata']['name']}",
            self.networking.create_namespaced_network_policy,
            scope,
            namespace,
            body,
        )

    def replace_policy(self, namespace: str, name: str, body: dict, scope: Optional[Scope] = None) -> None:
        _call(
            f"replace networkpolicy {namespace}/{name}",
            self.networking.replace_namespaced_network_policy,
            scope,
            name,
            namespace,
            body,
        )

    def delete_policy(self, namespace: str, name: str, uid: Optional[str] = None, scope: Optional[Scope] = None) -> None:
        body = {"preconditions": {"uid": uid}} if uid else None
        _call(
            f"delete networkpolicy {namespace}/{name}",
            self.networking.delete_namespaced_network_policy,
            scope,
            name,
            namespace,
            body=body,
        )


class EventRecorder:
    """Writes core/v1 Events about owners. Never raises."""

    def __init__(
        self,
        core: Optional[client.CoreV1Api] = None,
        component: str = "namespace-controller",
        cluster_namespace: str = "default",
        log: Optional[logging.Logger] = None,
    ):
        self.core = core or client.CoreV1Api()
        self.component = component
        self.cluster_namespace = cluster_namespace
        self.log = log or logging.getLogger("events")

    def event(self, owner: Owner, type_: str, reason: str, message: str) -> None:
        ns = owner.namespace if owner.kind.namespaced else self.cluster_namespace
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = {
            "metadata": {"generateName": f"{owner.name}.", "namespace": ns},
            "involvedObject": owner.object_reference(),
            "reason": reason,
            "message": message,
            "type": type_,
            "source": {"component": self.component},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        try:
            self.core.create_namespaced_event(ns, body)
        except (ApiException, HTTPError) as e:
            self.log.warning("unable to record %s event on %s: %s", reason, owner.request, e)

    def warning(self, owner: Owner, reason: str, message: str) -> None:
        self.event(owner, "Warning", reason, message)
