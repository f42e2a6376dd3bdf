"""Collect the effective sshd configuration from the host."""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Protocol

from ssh_compliance_plugin.collection.parser import parse_sshd_config
from ssh_compliance_plugin.config import PluginOptions
from ssh_compliance_plugin.errors import FetchError
from ssh_compliance_plugin.evidence.models import Step, StructuredConfig

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.2
_MAX_STDERR_CHARACTERS = 2_000

_FETCH_DESCRIPTION = (
    "Fetch SSH configuration from host machine, using `sshd -T` command. This will output "
    "the final configuration values used by the SSH service on the host machine."
)
_FETCH_REMARKS = (
    "`sshd -T` is used to collect SSH information in aggregate, from all configurations "
    "files known by the SSH software package."
)


@dataclass
class FetchResult:
    config: StructuredConfig
    steps: list[Step] = field(default_factory=list)


class SSHFetcher(Protocol):
    def fetch_ssh_configuration(self) -> FetchResult:
        """Return the structured configuration, or raise ``FetchError``."""


class LocalSSHFetcher:
    """Run ``sshd -T`` and parse its output.

    With ``sudo`` enabled the command is prefixed with ``sudo``; with a
    ``remote_host`` it is executed over ``ssh`` on that host instead.
    """

    def __init__(
        self,
        options: PluginOptions,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._options = options
        self._cancel_event = cancel_event

    def command(self) -> list[str]:
        argv = [*shlex.split(self._options.sshd_command), "-T"]
        if self._options.sudo:
            argv = ["sudo", *argv]
        if self._options.remote_host:
            argv = ["ssh", self._options.remote_host, *argv]
        return argv

    def collection_step(self) -> Step:
        title = "Fetch SSH configuration from host machine"
        remarks = _FETCH_REMARKS
        if self._options.remote_host:
            title = f"Fetch SSH configuration from {self._options.remote_host} over SSH"
        if self._options.sudo:
            title = f"{title} using sudo"
            remarks = (
                f"{remarks} Sudo is used to elevate privileges for the collection of "
                "configuration."
            )
        return Step(title=title, description=_FETCH_DESCRIPTION, remarks=remarks)

    def fetch_ssh_configuration(self) -> FetchResult:
        steps = [self.collection_step()]
        argv = self.command()
        logger.debug("Fetching ssh configuration with %s", shlex.join(argv))

        stdout = self._run(argv, steps)

        logger.debug("Converting ssh configuration to structured map for evaluation")
        steps.append(
            Step(
                title="Convert collected SSH configuration to JSON format",
                description=(
                    "Convert SSH configuration collected by plugin to JSON format. This makes "
                    "the configuration accessible for policy engines to validate and assert "
                    "policy controls."
                ),
            )
        )
        config = parse_sshd_config(stdout)
        if not config:
            logger.error("sshd -T produced no configuration directives")
            raise FetchError("sshd -T produced no configuration directives", steps)
        return FetchResult(config=config, steps=steps)

    def _run(self, argv: list[str], steps: list[Step]) -> bytes:
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Failed to fetch SSH configuration (sshd -T): %s", exc)
            raise FetchError(f"failed to start {argv[0]}: {exc}", steps) from exc

        timeout = self._options.timeout_seconds
        started = time.monotonic()
        while True:
            try:
                stdout, stderr = process.communicate(timeout=_POLL_INTERVAL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                if self._cancel_event is not None and self._cancel_event.is_set():
                    self._abort(process)
                    raise FetchError("ssh configuration collection was cancelled", steps)
                if timeout is not None and time.monotonic() - started > timeout:
                    self._abort(process)
                    raise FetchError(
                        f"ssh configuration collection timed out after {timeout}s", steps
                    )

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[:_MAX_STDERR_CHARACTERS]
            logger.error(
                "Failed to fetch SSH configuration (sshd -T): exit status %s: %s",
                process.returncode,
                detail,
            )
            raise FetchError(
                f"{shlex.join(argv)} exited with status {process.returncode}: {detail}",
                steps,
            )
        return stdout

    @staticmethod
    def _abort(process: subprocess.Popen) -> None:
        process.kill()
        process.communicate()


class StaticSSHFetcher:
    """Fetcher returning a fixed configuration, for dry runs and tests."""

    def __init__(self, config: StructuredConfig, steps: list[Step] | None = None) -> None:
        self._config = config
        self._steps = steps or []

    def fetch_ssh_configuration(self) -> FetchResult:
        steps = list(self._steps)
        if not self._config:
            raise FetchError("ssh configuration contains no directives", steps)
        return FetchResult(
            config={key: list(values) for key, values in self._config.items()},
            steps=steps,
        )
