from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional

from steadyhost.core.manifest.models import RestorerPolicy, Sensitivity


def expand_path(p: str) -> str:
    return os.path.expandvars(os.path.expanduser(str(p or "")))


def _norm(p: str) -> str:
    return os.path.normcase(os.path.normpath(os.path.abspath(p)))


@dataclass(frozen=True)
class SensitivityDecision:
    blocked: bool = False
    warning: Optional[str] = None


class SensitivePathPolicy:
    """
    Deny-list of credential locations (globs, ~ and env vars expanded).

    A target on the deny-list is blocked unless its config module declares a
    `warn-only` restorer. High-sensitivity modules with a `block` restorer are
    blocked even off the list.
    """

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns: List[str] = []
        for p in patterns:
            expanded = expand_path(p)
            # unexpanded %VAR% / $VAR cannot match anything real
            if "%" in expanded or "$" in expanded:
                continue
            self.patterns.append(_norm(expanded))

    def match(self, target: str) -> Optional[str]:
        t = _norm(target)
        for pat in self.patterns:
            if t == pat or t.startswith(pat.rstrip(os.sep) + os.sep) or fnmatch.fnmatch(t, pat):
                return pat
        return None

    def evaluate(self, target: str, *, sensitivity: Sensitivity = Sensitivity.low, restorer: Optional[RestorerPolicy] = None) -> SensitivityDecision:
        hit = self.match(target)
        if hit is not None:
            if restorer == RestorerPolicy.warn_only:
                return SensitivityDecision(warning=f"target is a sensitive location ({hit}); restoring under warn-only policy")
            return SensitivityDecision(blocked=True, warning=f"target is a sensitive location ({hit})")
        if sensitivity == Sensitivity.high:
            if restorer == RestorerPolicy.block:
                return SensitivityDecision(blocked=True, warning="high-sensitivity module is blocked by its restorer policy")
            return SensitivityDecision(warning="restoring high-sensitivity configuration")
        if sensitivity == Sensitivity.medium:
            return SensitivityDecision(warning="restoring medium-sensitivity configuration")
        return SensitivityDecision()
