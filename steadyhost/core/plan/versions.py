"""
Version constraints.

Versions are dot-separated numeric sequences. The shorter side is
right-padded with zeros before segment-wise comparison, so "1.2" == "1.2.0".
A segment that is not purely numeric contributes its leading digits
("3rc1" -> 3, "beta" -> 0).

Constraint grammar:
    "1.2.3"    exact
    "==1.2.3"  exact
    ">=1.2.3"  minimum
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


class ConstraintOp(str, Enum):
    EXACT = "=="
    MINIMUM = ">="


@dataclass(frozen=True)
class VersionConstraint:
    op: ConstraintOp
    version: str

    def __str__(self) -> str:
        if self.op == ConstraintOp.EXACT:
            return self.version
        return f"{self.op.value}{self.version}"

    def satisfied_by(self, installed: Optional[str]) -> bool:
        if installed is None or str(installed).strip() == "":
            return False
        cmp = compare_versions(installed, self.version)
        if self.op == ConstraintOp.EXACT:
            return cmp == 0
        return cmp >= 0


def _segments(version: str) -> List[int]:
    out: List[int] = []
    for part in str(version).strip().lstrip("vV").split("."):
        m = _LEADING_DIGITS.match(part)
        out.append(int(m.group(1)) if m else 0)
    return out


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1."""
    sa = _segments(a)
    sb = _segments(b)
    width = max(len(sa), len(sb))
    sa += [0] * (width - len(sa))
    sb += [0] * (width - len(sb))
    for x, y in zip(sa, sb):
        if x != y:
            return -1 if x < y else 1
    return 0


def parse_constraint(text: Optional[str]) -> Optional[VersionConstraint]:
    if text is None:
        return None
    raw = str(text).strip()
    if not raw:
        return None
    if raw.startswith(">="):
        op, ver = ConstraintOp.MINIMUM, raw[2:].strip()
    elif raw.startswith("=="):
        op, ver = ConstraintOp.EXACT, raw[2:].strip()
    elif raw.startswith("="):
        op, ver = ConstraintOp.EXACT, raw[1:].strip()
    else:
        op, ver = ConstraintOp.EXACT, raw
    if not ver or not _LEADING_DIGITS.match(ver.lstrip("vV")):
        raise ValueError(f"invalid version constraint: {text!r}")
    return VersionConstraint(op=op, version=ver)


def satisfies(installed: Optional[str], constraint: Optional[str]) -> bool:
    """No constraint means any installed version satisfies."""
    vc = parse_constraint(constraint)
    if vc is None:
        return installed is not None
    return vc.satisfied_by(installed)
