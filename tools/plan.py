#!/usr/bin/env python3
"""Plan-only runner: prints what the controller would reconcile for one owner without applying changes.

Usage:
  NAMESPACE=team-a python3 tools/plan.py
  KIND=Service NAMESPACE=team-a NAME=web python3 tools/plan.py

Notes:
- Uses in-cluster config when available, else your local kubeconfig (same as app.py).
- Does not create/update/delete any objects.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import desired_policies  # noqa: E402
from k8s import KubeStore, NotFound, load_kube  # noqa: E402
from owners.kinds import KINDS, Owner  # noqa: E402
from reconcile import plan_reconcile, print_plan  # noqa: E402


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="[%(name)s] %(message)s")
    log = logging.getLogger("plan")

    kind = KINDS[os.environ.get("KIND", "Namespace")]
    namespace = os.environ.get("NAMESPACE", "default")
    name = os.environ.get("NAME", namespace)

    load_kube(log)
    store = KubeStore()
    try:
        owner = Owner.from_dict(kind, store.get_owner(kind, namespace, name))
    except NotFound:
        log.error("%s %s not found", kind.kind, name)
        return 1

    plan = plan_reconcile(store, owner, desired_policies(owner, log))
    print_plan(plan)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
