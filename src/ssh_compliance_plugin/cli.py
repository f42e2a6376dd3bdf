"""Command-line entry point for running an evaluation outside the platform host."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path

from ssh_compliance_plugin import __version__
from ssh_compliance_plugin.collection.fetcher import StaticSSHFetcher
from ssh_compliance_plugin.collection.parser import parse_sshd_config
from ssh_compliance_plugin.config import load_settings
from ssh_compliance_plugin.evidence.models import Step
from ssh_compliance_plugin.host.api import ArtifactHostApi
from ssh_compliance_plugin.host.artifacts import ArtifactStore
from ssh_compliance_plugin.logging_utils import configure_logging, get_logger
from ssh_compliance_plugin.orchestrator import EvalStatus, LocalSSHPlugin


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ssh-compliance-plugin",
        description="Evaluate the effective sshd configuration against policy bundles.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-p",
        "--policy",
        dest="policies",
        action="append",
        default=[],
        metavar="PATH",
        help="Policy bundle path; repeatable. Defaults to POLICY_PATHS.",
    )
    parser.add_argument("--sudo", action="store_true", help="Run sshd -T through sudo")
    parser.add_argument("--remote-host", help="Collect configuration over ssh from this host")
    parser.add_argument("--namespace", help="Policy namespace to evaluate")
    parser.add_argument(
        "--config-file",
        type=Path,
        help="Evaluate a saved `sshd -T` dump instead of running sshd",
    )
    parser.add_argument("-o", "--output", help="Directory for evidence artifacts")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    return parser


def _plugin_options(args: argparse.Namespace) -> dict[str, str]:
    options: dict[str, str] = {}
    if args.sudo:
        options["sudo"] = "true"
    if args.remote_host:
        options["remote_host"] = args.remote_host
    if args.namespace:
        options["namespace"] = args.namespace
    return options


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    logger = get_logger(__name__)
    settings = load_settings()

    policy_paths = args.policies or list(settings.policy.paths)
    if not policy_paths:
        logger.error("No policy bundles given; pass --policy or set POLICY_PATHS")
        return 2

    plugin_kwargs: dict[str, object] = {}
    if args.config_file is not None:
        try:
            content = args.config_file.read_text(encoding="utf-8")
        except OSError as exc:
            logger.error("Unable to read %s: %s", args.config_file, exc)
            return 2
        static = StaticSSHFetcher(
            parse_sshd_config(content),
            steps=[
                Step(
                    title="Read SSH configuration from file",
                    description=(
                        f"Read a previously collected `sshd -T` dump from {args.config_file}."
                    ),
                )
            ],
        )
        plugin_kwargs["fetcher_factory"] = lambda _options, _cancel: static

    plugin = LocalSSHPlugin(settings, **plugin_kwargs)
    plugin.configure(_plugin_options(args))

    api = ArtifactHostApi(ArtifactStore(args.output or settings.evidence.artifact_path))
    result = plugin.eval(policy_paths, api)

    summary = {
        "status": result.status.value,
        "observations": len(result.observations),
        "findings": len(result.findings),
        "artifacts": [record.location for record in api.records],
        "errors": [str(err) for err in result.error.errors] if result.error else [],
    }
    json.dump(summary, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0 if result.status is EvalStatus.SUCCESS else 1


def run_entrypoint() -> None:
    sys.exit(main())
