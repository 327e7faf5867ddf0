# controller.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from config import desired_policies
from k8s import NotFound, Scope, StoreError
from owners.kinds import Owner, OwnerKind, Request
from reconcile import create_or_update, delete

DEFAULT_REQUEUE_SECONDS = 120.0


@dataclass(frozen=True)
class Result:
    """What the dispatcher should do with a request after a reconcile."""

    requeue_after: Optional[float] = None
    fatal: bool = False

    @classmethod
    def ok(cls) -> "Result":
        return cls()

    @classmethod
    def retry(cls, after: float) -> "Result":
        return cls(requeue_after=after)

    @classmethod
    def failed(cls) -> "Result":
        return cls(fatal=True)


class Reconciler:
    """Drives the child NetworkPolicies of one owner kind toward its annotations."""

    def __init__(
        self,
        kind: OwnerKind,
        store,
        recorder,
        log: Optional[logging.Logger] = None,
        requeue_after: float = DEFAULT_REQUEUE_SECONDS,
    ):
        self.kind = kind
        self.store = store
        self.recorder = recorder
        self.log = log or logging.getLogger(kind.controller_name)
        self.requeue_after = requeue_after

    def reconcile(self, request: Request, scope: Optional[Scope] = None) -> Result:
        self.log.info("reconciling %s", request)

        try:
            obj = self.store.get_owner(self.kind, request.namespace, request.name, scope=scope)
        except NotFound:
            # deleted after the request was queued; nothing to do
            return Result.ok()
        except StoreError as e:
            self.log.error("unable to read %s: %s", request, e)
            return Result.retry(self.requeue_after)

        owner = Owner.from_dict(self.kind, obj)
        if owner.being_deleted:
            return Result.ok()

        desired = desired_policies(owner, self.log)
        for name, ns, manifest in desired.candidates(owner):
            try:
                if manifest is not None:
                    outcome = create_or_update(self.store, owner, manifest, scope=scope, log=self.log)
                    if outcome == "foreign":
                        self.recorder.warning(
                            owner, "PolicyConflict", f"networkpolicy {ns}/{name} is controlled by another owner"
                        )
                else:
                    delete(self.store, owner, name, ns, scope=scope, log=self.log)
            except StoreError as e:
                action = "apply" if manifest is not None else "delete"
                self.log.error("%s: unable to %s networkpolicy %s/%s: %s", request, action, ns, name, e)
                return self._manage_error(owner, e)

        # scoped policies created under a name the annotations no longer give
        for name, ns in desired.stale(owner):
            try:
                delete(self.store, owner, name, ns, scope=scope, log=self.log, owned_only=True)
            except StoreError as e:
                self.log.error("%s: unable to delete networkpolicy %s/%s: %s", request, ns, name, e)
                return self._manage_error(owner, e)

        return Result.ok()

    def _manage_error(self, owner: Owner, issue: Exception) -> Result:
        self.recorder.warning(owner, "ProcessingError", str(issue))
        return Result.retry(self.requeue_after)
