#!/usr/bin/env python3
"""tools/render.py

Render the NetworkPolicies the controller wants for one owner as
multi-document YAML.

Usage examples:
  # from the live object
  NAMESPACE=team-a python3 tools/render.py

  # a Service owner
  KIND=Service NAMESPACE=team-a NAME=web python3 tools/render.py

  # offline, from a manifest on disk
  OWNER_FILE=ns.yaml python3 tools/render.py | kubectl apply --dry-run=server -f -

Notes:
- This does NOT apply anything.
- Policies are rendered without ownerReferences.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

import yaml

# Allow executing from tools/ without installing as a package
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config import desired_policies  # noqa: E402
from owners.kinds import KINDS, Owner, OwnerKind  # noqa: E402


def load_owner(kind: OwnerKind, owner_file: Optional[str], namespace: str, name: str) -> Owner:
    if owner_file:
        with open(owner_file) as f:
            return Owner.from_dict(kind, yaml.safe_load(f))

    from k8s import KubeStore, load_kube

    load_kube()
    return Owner.from_dict(kind, KubeStore().get_owner(kind, namespace, name))


def main() -> int:
    logging.basicConfig(level=logging.WARNING, format="[%(name)s] %(levelname)s %(message)s")
    kind = KINDS[os.environ.get("KIND", "Namespace")]
    namespace = os.environ.get("NAMESPACE", "default")
    name = os.environ.get("NAME", namespace)

    owner = load_owner(kind, os.environ.get("OWNER_FILE"), namespace, name)
    desired = desired_policies(owner, logging.getLogger("render"))

    # Multi-doc YAML to stdout
    try:
        for pol in desired.present():
            sys.stdout.write("---\n")
            yaml.safe_dump(pol, sys.stdout, sort_keys=False)
    except BrokenPipeError:
        # Common when piping to `head`; exit cleanly
        return 0

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
