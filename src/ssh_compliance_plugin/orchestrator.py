"""Host-facing entry point driving configuration, evaluation and reporting."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from ssh_compliance_plugin.collection.fetcher import LocalSSHFetcher, SSHFetcher
from ssh_compliance_plugin.config import PluginOptions, Settings, load_settings
from ssh_compliance_plugin.errors import ErrorAccumulator, EvaluationError, IngestionError
from ssh_compliance_plugin.evidence.compiler import EvidenceCompiler
from ssh_compliance_plugin.evidence.models import Finding, Observation
from ssh_compliance_plugin.evidence.subjects import SubjectContext, resolve_subject
from ssh_compliance_plugin.host.api import HostApi
from ssh_compliance_plugin.policy.engine import PolicyEngine, PolicyExecutor

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[PluginOptions, threading.Event | None], SSHFetcher]


class RunState(str, Enum):
    IDLE = "idle"
    CONFIGURING = "configuring"
    FETCHING = "fetching"
    EVALUATING = "evaluating"
    REPORTING = "reporting"


class EvalStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass
class EvalResult:
    status: EvalStatus
    error: EvaluationError | None = None
    observations: list[Observation] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    transitions: list[tuple[RunState, str | None]] = field(default_factory=list)


class _RunTracker:
    def __init__(self) -> None:
        self.state = RunState.IDLE
        self.transitions: list[tuple[RunState, str | None]] = [(RunState.IDLE, None)]

    def enter(self, state: RunState, detail: str | None = None) -> None:
        logger.debug("Evaluation state %s -> %s %s", self.state.value, state.value, detail or "")
        self.state = state
        self.transitions.append((state, detail))


def _default_fetcher(options: PluginOptions, cancel_event: threading.Event | None) -> SSHFetcher:
    return LocalSSHFetcher(options, cancel_event=cancel_event)


class LocalSSHPlugin:
    """Evaluates the host's sshd configuration against policy bundles.

    ``configure`` is expected once, before any evaluation. Each ``eval`` call
    builds its own fetcher and compiler, so nothing but the configured options
    is shared between runs.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        fetcher_factory: FetcherFactory = _default_fetcher,
        executor: PolicyExecutor | None = None,
        subject_resolver: Callable[[], SubjectContext] = resolve_subject,
    ) -> None:
        self._settings = settings or load_settings()
        self._options = PluginOptions.from_settings(self._settings)
        self._fetcher_factory = fetcher_factory
        self._executor = executor or PolicyEngine()
        self._subject_resolver = subject_resolver

    @property
    def options(self) -> PluginOptions:
        return self._options

    def configure(self, options: Mapping[str, str]) -> None:
        logger.debug("Configuring local ssh plugin")
        logger.debug("Config passed: %s", sorted(options))
        self._options = self._options.merged_with(options)

    def eval(
        self,
        policy_paths: Sequence[str],
        api: HostApi,
        cancel_event: threading.Event | None = None,
    ) -> EvalResult:
        tracker = _RunTracker()
        options = self._options

        tracker.enter(RunState.CONFIGURING)
        subject = self._subject_resolver()
        fetcher = self._fetcher_factory(options, cancel_event)
        compiler = EvidenceCompiler(
            subject=subject,
            executor=self._executor,
            namespace=options.namespace,
            expiry_hours=options.expiry_hours,
        )

        tracker.enter(RunState.FETCHING)
        evidence = compiler.compile(
            fetcher,
            policy_paths,
            cancel_event=cancel_event,
            on_bundle=lambda path: tracker.enter(RunState.EVALUATING, path),
        )

        tracker.enter(RunState.REPORTING)
        errors = ErrorAccumulator().join(evidence.error)
        if evidence.fetched and (evidence.observations or evidence.findings):
            try:
                api.create_observations(evidence.observations)
                api.create_findings(evidence.findings)
            except IngestionError as exc:
                errors.join(exc)
            except Exception as exc:
                err = IngestionError(f"host rejected evidence: {exc}")
                err.__cause__ = exc
                errors.join(err)
        elif evidence.fetched:
            logger.warning("Evaluation produced no evidence for %d bundle(s)", len(policy_paths))

        error = errors.error()
        status = EvalStatus.FAILURE if error is not None else EvalStatus.SUCCESS
        if error is not None:
            logger.error("Evaluation failed: %s", error)
        else:
            logger.info(
                "Evaluation succeeded with %d observation(s) and %d finding(s)",
                len(evidence.observations),
                len(evidence.findings),
            )
        tracker.enter(RunState.IDLE)
        return EvalResult(
            status=status,
            error=error,
            observations=evidence.observations,
            findings=evidence.findings,
            transitions=tracker.transitions,
        )
