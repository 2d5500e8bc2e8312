from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import IO, Any, Callable, Dict, List, Optional, Tuple

from steadyhost import __version__
from steadyhost.core.config.loader import load_engine_config
from steadyhost.core.config.paths import StatePaths
from steadyhost.core.drivers.registry import DriverRegistry, discover_drivers
from steadyhost.core.errors import SteadyError, normalize_exception
from steadyhost.core.events.envelope import Outcome, build_envelope, exit_code_for
from steadyhost.core.events.stream import EventStream, NullEventStream
from steadyhost.core.logger import get_logger, setup_logging
from steadyhost.core.provisioner import Provisioner

Result = Tuple[Outcome, Dict[str, Any], str]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="steadyhost", description="Declarative machine provisioning")
    ap.add_argument("--version", action="version", version=f"steadyhost {__version__}")
    ap.add_argument("--home", default=None, help="State root (defaults to $STEADYHOST_HOME or .)")
    ap.add_argument("--config", default=None, help="Engine config file (defaults to <home>/steadyhost.json)")
    ap.add_argument("--manifests", default=None, help="Directory holding named profiles")
    ap.add_argument("--json", action="store_true", help="Print the result envelope as JSON")
    ap.add_argument("--events", action="store_true", help="Stream NDJSON progress events to stderr")
    ap.add_argument("-v", "--verbose", action="store_true")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("plan", help="Compute install/upgrade/skip decisions")
    p.add_argument("manifest")
    p.add_argument("--save", action="store_true", help="Write the plan under state/plans/")
    p.add_argument("--out", default=None, help="Write the plan to this path")

    p = sub.add_parser("apply", help="Install/upgrade apps, then restore configuration")
    p.add_argument("manifest", nargs="?", default=None)
    p.add_argument("--plan", default=None, help="Apply a previously saved plan")
    p.add_argument("--dry-run", action="store_true")
    p.add_argument("--no-restore", action="store_true")
    p.add_argument("--export-root", default=None, help="Resolve restore sources under this directory")

    p = sub.add_parser("verify", help="Evaluate verify checks")
    p.add_argument("manifest")
    p.add_argument("--strict", action="store_true", help="Treat failed checks as a fatal error")

    p = sub.add_parser("restore", help="Restore configuration only")
    p.add_argument("manifest")
    p.add_argument("--export-root", default=None)
    p.add_argument("--dry-run", action="store_true")

    p = sub.add_parser("revert", help="Undo a restore run from its journal")
    p.add_argument("journal", nargs="?", default=None, help="Run id or journal path (default: most recent)")
    p.add_argument("--dry-run", action="store_true")

    p = sub.add_parser("drift", help="Compare last applied state with the host")
    p.add_argument("manifest")

    p = sub.add_parser("capture", help="Write a manifest from installed apps")
    p.add_argument("out")
    p.add_argument("--driver", default=None)
    p.add_argument("--name", default="captured")
    return ap


# ---- command handlers: (provisioner, args) -> (outcome, data, human message) ----
def _cmd_plan(prov: Provisioner, args: argparse.Namespace) -> Result:
    plan, path = prov.plan(args.manifest, save=args.save, out_path=args.out)
    counts = plan.counts()
    data = {"plan": plan.to_wire(), "counts": counts, "planPath": path}
    return Outcome.success, data, f"Plan: {counts['install']} install, {counts['upgrade']} upgrade, {counts['skip']} skip"


def _cmd_apply(prov: Provisioner, args: argparse.Namespace) -> Result:
    if not args.manifest and not args.plan:
        raise SteadyError("USAGE_ERROR", "apply needs a manifest or --plan.", stage="cli")
    report = prov.apply(
        args.manifest,
        plan_path=args.plan,
        dry_run=args.dry_run,
        enable_restore=not args.no_restore,
        export_root=args.export_root,
    )
    data = report.to_wire()
    data["counts"] = report.summary.to_wire()
    s = report.summary
    head = "Apply completed" if report.outcome == Outcome.success else "Apply completed with issues"
    if report.dry_run:
        head = "Dry run: " + head.lower()
    return report.outcome, data, f"{head}: {s.total} total, {s.success} ok, {s.skipped} skipped, {s.failed} failed"


def _cmd_verify(prov: Provisioner, args: argparse.Namespace) -> Result:
    report = prov.verify(args.manifest)
    if args.strict:
        report.raise_for_failures()
    c = report.counts()
    outcome = Outcome.success if report.success else Outcome.partial
    return outcome, report.to_dict(), f"Verify: {c['pass']}/{c['total']} passed"


def _cmd_restore(prov: Provisioner, args: argparse.Namespace) -> Result:
    journal = prov.restore(args.manifest, export_root=args.export_root, dry_run=args.dry_run)
    counts = journal.counts()
    data = {"journal": journal.to_wire(), "counts": counts}
    outcome = Outcome.partial if journal.failed else Outcome.success
    done = ", ".join(f"{v} {k}" for k, v in counts.items() if v)
    return outcome, data, f"Restore: {done or 'nothing to do'}"


def _cmd_revert(prov: Provisioner, args: argparse.Namespace) -> Result:
    result = prov.revert(args.journal, dry_run=args.dry_run)
    data = result.to_dict()
    outcome = Outcome.success if result.ok else Outcome.partial
    done = ", ".join(f"{v} {k}" for k, v in result.counts().items() if v)
    return outcome, data, f"Revert {result.run_id}: {done or 'nothing to do'}"


def _cmd_drift(prov: Provisioner, args: argparse.Namespace) -> Result:
    report = prov.drift(args.manifest)
    return Outcome.success, report.to_dict(), report.summary()


def _cmd_capture(prov: Provisioner, args: argparse.Namespace) -> Result:
    manifest = prov.capture(args.out, driver=args.driver, name=args.name)
    data = {"manifestPath": args.out, "apps": len(manifest.apps), "configModules": list(manifest.config_modules)}
    return Outcome.success, data, f"Captured {len(manifest.apps)} apps to {args.out}"


HANDLERS: Dict[str, Callable[[Provisioner, argparse.Namespace], Result]] = {
    "plan": _cmd_plan,
    "apply": _cmd_apply,
    "verify": _cmd_verify,
    "restore": _cmd_restore,
    "revert": _cmd_revert,
    "drift": _cmd_drift,
    "capture": _cmd_capture,
}


def main(
    argv: Optional[List[str]] = None,
    *,
    registry: Optional[DriverRegistry] = None,
    stdout: Optional[IO[str]] = None,
    stderr: Optional[IO[str]] = None,
    **provisioner_kwargs: Any,
) -> int:
    args = build_parser().parse_args(argv)
    out = stdout or sys.stdout
    err = stderr or sys.stderr
    events: EventStream = EventStream(err) if args.events else NullEventStream()
    logger = get_logger()

    outcome = Outcome.fatal
    data: Dict[str, Any] = {}
    error: Optional[SteadyError] = None
    message = ""
    try:
        config = load_engine_config(args.config, state_root=args.home, manifests_root=args.manifests)
        paths = StatePaths(config.state_root)
        logger = setup_logging(
            config.log_dir or paths.logs_dir,
            level=logging.DEBUG if args.verbose else logging.INFO,
            console=not (args.json or args.events),
        )
        if registry is None:
            registry = DriverRegistry(discover_drivers(logger=logger), primary=config.primary_driver)
        prov = Provisioner(config=config, registry=registry, events=events, logger=logger, **provisioner_kwargs)
        outcome, data, message = HANDLERS[args.command](prov, args)
    except KeyboardInterrupt:
        events.close(outcome="interrupted")
        print("Interrupted; partial results were saved.", file=err)
        return 130
    except SteadyError as e:
        error = e
        logger.error("%s failed: %s", args.command, e)
    except Exception as e:  # noqa: BLE001
        error = normalize_exception(e, stage=args.command)
        logger.exception("%s failed unexpectedly", args.command)
    if error is not None:
        outcome = Outcome.fatal
        data = {}

    events.close(outcome=outcome.value)
    envelope = build_envelope(command=args.command, run_id=events.run_id, outcome=outcome, data=data, error=error)
    if args.json:
        out.write(json.dumps(envelope, indent=2, ensure_ascii=False, default=str) + "\n")
    elif error is not None:
        line = f"error: {error.user_message}"
        if error.detail:
            line += f" ({error.detail})"
        print(line, file=out)
        if error.remediation:
            print(f"hint: {error.remediation}", file=out)
    else:
        print(message, file=out)
    return exit_code_for(outcome)


if __name__ == "__main__":
    raise SystemExit(main())
