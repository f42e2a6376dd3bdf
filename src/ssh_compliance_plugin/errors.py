"""Error types and the accumulator used to report partial evaluation failures."""

from __future__ import annotations

from collections.abc import Iterator, Sequence


class PluginError(RuntimeError):
    pass


class FetchError(PluginError):
    """Collecting the sshd configuration failed; no evidence can be produced."""

    def __init__(self, message: str, steps: Sequence[object] = ()) -> None:
        super().__init__(message)
        self.steps = list(steps)


class BundleExecutionError(PluginError):
    """A single policy bundle could not be compiled or executed."""

    def __init__(self, bundle_path: str, message: str) -> None:
        super().__init__(f"bundle {bundle_path}: {message}")
        self.bundle_path = bundle_path


class PolicyLoadError(BundleExecutionError):
    pass


class IdentitySeedError(PluginError):
    pass


class IngestionError(PluginError):
    """The host rejected or failed to store the compiled evidence."""


class EvaluationCancelled(PluginError):
    pass


class EvaluationError(PluginError):
    """Aggregate of every failure encountered during one evaluation run."""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(_describe(err) for err in self.errors))


def _describe(err: BaseException) -> str:
    message = str(err)
    return f"{type(err).__name__}: {message}" if message else type(err).__name__


class ErrorAccumulator:
    """Collects non-fatal errors so a run keeps going and reports all of them at the end."""

    def __init__(self) -> None:
        self._errors: list[BaseException] = []

    def join(self, err: BaseException | None) -> ErrorAccumulator:
        if err is None:
            return self
        if isinstance(err, EvaluationError):
            self._errors.extend(err.errors)
        else:
            self._errors.append(err)
        return self

    @property
    def errors(self) -> list[BaseException]:
        return list(self._errors)

    def error(self) -> EvaluationError | None:
        if not self._errors:
            return None
        return EvaluationError(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(self._errors)
