"""Compile policy results into observations and findings.

The compiler drives a single evaluation run: it fetches the sshd configuration
once, executes every requested policy bundle in order and turns each policy
result into one observation plus its findings. Failures are accumulated
rather than raised, so one broken bundle (or one result whose identity cannot
be seeded) never hides the evidence produced by the others. Only a failed
fetch stops the run, since nothing can be evaluated without configuration.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from ssh_compliance_plugin.collection.fetcher import SSHFetcher
from ssh_compliance_plugin.errors import (
    BundleExecutionError,
    ErrorAccumulator,
    EvaluationCancelled,
    EvaluationError,
    FetchError,
    IdentitySeedError,
)
from ssh_compliance_plugin.evidence.identity import finding_uuid, observation_uuid
from ssh_compliance_plugin.evidence.models import (
    Activity,
    Finding,
    FindingState,
    FindingStatus,
    Observation,
    PolicyResult,
    Property,
    Step,
    StructuredConfig,
)
from ssh_compliance_plugin.evidence.subjects import SubjectContext
from ssh_compliance_plugin.policy.engine import PolicyExecutor
from ssh_compliance_plugin.utils.time import expires_after, utc_now

logger = logging.getLogger(__name__)

_COMPILE_BUNDLE = Step(
    title="Compile policy bundle",
    description=(
        "Using a locally addressable policy path, compile the policy files to an in memory "
        "executable."
    ),
)
_EXECUTE_BUNDLE = Step(
    title="Execute policy bundle",
    description=(
        "Using previously collected JSON-formatted SSH configuration, execute the compiled "
        "policies."
    ),
)
_COMPILE_RESULTS = Step(
    title="Compile policy results",
    description=(
        "Using the output from policy execution, compile the resulting output to "
        "observations and findings, marking any violations, risks, and other OSCAL-familiar "
        "data."
    ),
)


@dataclass
class CompiledEvidence:
    observations: list[Observation] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    error: EvaluationError | None = None
    fetched: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def collection_activity(steps: Sequence[Step]) -> Activity:
    return Activity(
        title="Collect SSH configuration",
        description=(
            "Collect the effective SSH daemon configuration from the host and convert it into "
            "structured data for policy evaluation."
        ),
        steps=tuple(steps),
    )


def policy_activities(bundle_path: str) -> list[Activity]:
    return [
        Activity(
            title="Compile policy bundle",
            description=f"Compile the policy bundle at {bundle_path}.",
            steps=(_COMPILE_BUNDLE,),
        ),
        Activity(
            title="Execute policy",
            description=(
                "Execute the compiled policies using the prepared SSH configuration data."
            ),
            steps=(_EXECUTE_BUNDLE,),
        ),
        Activity(
            title="Compile results",
            description="Compile policy output into observations and findings.",
            steps=(_COMPILE_RESULTS,),
        ),
    ]


class EvidenceCompiler:
    def __init__(
        self,
        subject: SubjectContext,
        executor: PolicyExecutor,
        namespace: str,
        expiry_hours: int = 24,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._subject = subject
        self._executor = executor
        self._namespace = namespace
        self._expiry_hours = expiry_hours
        self._clock = clock
        self._new_id = id_factory

    def compile(
        self,
        fetcher: SSHFetcher,
        policy_paths: Sequence[str],
        cancel_event: threading.Event | None = None,
        on_bundle: Callable[[str], None] | None = None,
    ) -> CompiledEvidence:
        errors = ErrorAccumulator()
        evidence = CompiledEvidence()

        if cancel_event is not None and cancel_event.is_set():
            errors.join(EvaluationCancelled("evaluation cancelled before collection"))
            evidence.error = errors.error()
            return evidence

        try:
            fetched = fetcher.fetch_ssh_configuration()
        except FetchError as exc:
            logger.error("Failed to fetch ssh configuration: %s", exc)
            evidence.error = errors.join(exc).error()
            return evidence
        except Exception as exc:
            logger.exception("Unexpected failure fetching ssh configuration")
            err = FetchError(f"unexpected fetch failure: {exc}")
            err.__cause__ = exc
            evidence.error = errors.join(err).error()
            return evidence

        evidence.fetched = True
        collection = collection_activity(fetched.steps)

        for bundle_path in policy_paths:
            if cancel_event is not None and cancel_event.is_set():
                errors.join(EvaluationCancelled(f"evaluation cancelled before {bundle_path}"))
                break
            if on_bundle is not None:
                on_bundle(bundle_path)
            observations, findings = self._compile_bundle(
                fetched.config, bundle_path, collection, errors
            )
            evidence.observations.extend(observations)
            evidence.findings.extend(findings)

        evidence.error = errors.error()
        return evidence

    def _compile_bundle(
        self,
        config: StructuredConfig,
        bundle_path: str,
        collection: Activity,
        errors: ErrorAccumulator,
    ) -> tuple[list[Observation], list[Finding]]:
        logger.debug("Evaluating ssh configuration against bundle %s", bundle_path)
        try:
            results = self._executor.execute(config, bundle_path, self._namespace)
        except BundleExecutionError as exc:
            logger.error("Failed to execute policy bundle %s: %s", bundle_path, exc)
            errors.join(exc)
            return [], []
        except Exception as exc:
            logger.exception("Unexpected failure executing policy bundle %s", bundle_path)
            err = BundleExecutionError(bundle_path, str(exc))
            err.__cause__ = exc
            errors.join(err)
            return [], []

        activities = [collection, *policy_activities(bundle_path)]
        observations: list[Observation] = []
        findings: list[Finding] = []
        for result in results:
            try:
                obs_uuid = observation_uuid(self._subject.attributes, result)
                fnd_uuid = finding_uuid(self._subject.attributes, result)
            except IdentitySeedError as exc:
                logger.error(
                    "Failed to seed identity for policy %s in %s: %s",
                    result.policy.package,
                    bundle_path,
                    exc,
                )
                errors.join(exc)
                continue

            observation = self._build_observation(result, obs_uuid, activities)
            observations.append(observation)
            findings.extend(self._build_findings(result, fnd_uuid, observation))

        logger.debug(
            "Bundle %s produced %d observations and %d findings",
            bundle_path,
            len(observations),
            len(findings),
        )
        return observations, findings

    def _labels(self, result: PolicyResult) -> dict[str, str]:
        return {
            **self._subject.labels,
            "policy": result.policy.package,
            "policy_file": result.policy.file,
            "policy_path": result.bundle_path,
        }

    def _build_observation(
        self,
        result: PolicyResult,
        obs_uuid: str,
        activities: list[Activity],
    ) -> Observation:
        collected = self._clock()
        package = result.policy.package
        if result.violations:
            title = (
                f"Local SSH Validation on {self._subject.hostname} failed with "
                f"{len(result.violations)} violation(s)."
            )
            description = (
                f"Observed {len(result.violations)} violation(s) on the {package} policy "
                "within the Local SSH Compliance Plugin."
            )
        else:
            title = f"Local SSH Validation on {self._subject.hostname} passed."
            description = (
                f"Observed no violations on the {package} policy within the Local SSH "
                "Compliance Plugin."
            )
        return Observation(
            id=self._new_id(),
            uuid=obs_uuid,
            title=title,
            description=description,
            collected=collected,
            expires=expires_after(collected, self._expiry_hours),
            labels=self._labels(result),
            props=[
                Property(name="policy", value=package),
                Property(name="policy_file", value=result.policy.file),
                Property(name="policy_path", value=result.bundle_path),
            ],
            origins=list(self._subject.actors),
            subjects=list(self._subject.subjects),
            activities=list(activities),
            components=list(self._subject.components),
            inventory=list(self._subject.inventory),
        )

    def _build_findings(
        self,
        result: PolicyResult,
        fnd_uuid: str,
        observation: Observation,
    ) -> list[Finding]:
        package = result.policy.package
        if not result.violations:
            return [
                self._finding(
                    result,
                    fnd_uuid,
                    observation,
                    title=f"No violations found on {package}",
                    description=(
                        f"No violations found on the {package} policy within the Local SSH "
                        "Compliance Plugin."
                    ),
                    remarks=None,
                    state=FindingState.SATISFIED,
                )
            ]

        return [
            self._finding(
                result,
                fnd_uuid,
                observation,
                title=violation.title or f"Validation on {package} failed.",
                description=violation.description
                or (
                    f"Violation found on the {package} policy within the Local SSH "
                    "Compliance Plugin."
                ),
                remarks=violation.remarks,
                state=FindingState.NOT_SATISFIED,
            )
            for violation in result.violations
        ]

    def _finding(
        self,
        result: PolicyResult,
        fnd_uuid: str,
        observation: Observation,
        *,
        title: str,
        description: str,
        remarks: str | None,
        state: FindingState,
    ) -> Finding:
        return Finding(
            id=self._new_id(),
            uuid=fnd_uuid,
            title=title,
            description=description,
            remarks=remarks,
            collected=observation.collected,
            status=FindingStatus(state=state),
            related_observations=[observation.id],
            labels=self._labels(result),
            origins=list(self._subject.actors),
            subjects=list(self._subject.subjects),
            components=list(self._subject.components),
            inventory=list(self._subject.inventory),
        )
