# owners/annotations.py
from __future__ import annotations

from typing import Dict, List, NamedTuple, Optional, Tuple

ANNOTATION_BASE = "microsegmentation-operator.redhat-cop.io"
MICROSEGMENTATION = f"{ANNOTATION_BASE}/microsegmentation"
ALLOW_FROM_SELF = f"{ANNOTATION_BASE}/allow-from-self"
INBOUND_NAMESPACE_LABELS = f"{ANNOTATION_BASE}/inbound-namespace-labels"
OUTBOUND_NAMESPACE_LABELS = f"{ANNOTATION_BASE}/outbound-namespace-labels"

LabelPair = Tuple[str, str]


class LabelList(NamedTuple):
    """Parse outcome: ordered pairs, or an error message and no pairs."""

    pairs: List[LabelPair]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def flag(annotations: Dict[str, str], key: str) -> bool:
    """Boolean annotations are on only when spelled exactly "true"."""
    return (annotations or {}).get(key) == "true"


def parse_label_list(value: Optional[str]) -> LabelList:
    """
    Parse "k1=v1,k2=v2" into [("k1", "v1"), ("k2", "v2")].

    The first '=' of each entry splits key from value, so values may
    contain '='. An entry without '=' (or starting with it) makes the
    whole list unusable: no pairs are returned, only the error.
    Absent or blank values are an empty list, not an error.
    """
    if value is None or not value.strip():
        return LabelList(pairs=[])

    pairs: List[LabelPair] = []
    for entry in value.split(","):
        entry = entry.strip()
        idx = entry.find("=")
        if idx < 1:
            return LabelList(
                pairs=[],
                error=f"malformed entry {entry!r} in {value!r}: expected key=value",
            )
        pairs.append((entry[:idx], entry[idx + 1:]))
    return LabelList(pairs=pairs)
