from steadyhost.core.verify.checks import CheckResult
from steadyhost.core.verify.engine import VerifyEngine, VerifyReport

__all__ = ["CheckResult", "VerifyEngine", "VerifyReport"]
