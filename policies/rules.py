# policies/rules.py
from __future__ import annotations
from typing import Dict, List

from owners.annotations import LabelPair


def namespace_selector(pairs: List[LabelPair]) -> Dict:
    """All pairs combined into one matchLabels selector."""
    return {"matchLabels": {k: v for k, v in pairs}}


def ingress_rules(pairs: List[LabelPair]) -> List[Dict]:
    """
    One rule per label, each admitting namespaces carrying that label:

      - from:
        - namespaceSelector:
            matchLabels:
              key1: value1
      - from:
        - namespaceSelector:
            matchLabels:
              key2: value2
    """
    return [{"from": [{"namespaceSelector": namespace_selector([p])}]} for p in pairs]


def egress_rules(pairs: List[LabelPair]) -> List[Dict]:
    return [{"to": [{"namespaceSelector": namespace_selector([p])}]} for p in pairs]
