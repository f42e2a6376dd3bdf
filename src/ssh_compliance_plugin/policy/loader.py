"""Policy bundle loader for YAML policy documents."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from ssh_compliance_plugin.errors import PolicyLoadError
from ssh_compliance_plugin.policy.models import PolicyDocument

_POLICY_SUFFIXES = (".yaml", ".yml")


@dataclass(frozen=True)
class LoadedPolicy:
    file: str
    document: PolicyDocument


@dataclass(frozen=True)
class PolicyBundle:
    path: str
    policies: tuple[LoadedPolicy, ...]


def _policy_files(bundle_path: Path) -> list[Path]:
    if bundle_path.is_file():
        return [bundle_path]
    return sorted(
        p for p in bundle_path.rglob("*") if p.is_file() and p.suffix in _POLICY_SUFFIXES
    )


def load_policy_file(
    path: Path,
    relative_to: Path | None = None,
    bundle_path: str | None = None,
) -> list[LoadedPolicy]:
    """Load every policy document from a (possibly multi-document) YAML file.

    Load errors name ``bundle_path`` when given, otherwise the file itself.
    """
    display = str(path.relative_to(relative_to)) if relative_to else path.name
    bundle = bundle_path or str(path)
    with path.open("r", encoding="utf-8") as handle:
        try:
            documents = [doc for doc in yaml.safe_load_all(handle) if doc is not None]
        except yaml.YAMLError as exc:
            raise PolicyLoadError(bundle, f"invalid YAML in {display}: {exc}") from exc

    loaded: list[LoadedPolicy] = []
    for index, data in enumerate(documents):
        if not isinstance(data, dict):
            raise PolicyLoadError(bundle, f"document {index} in {display} is not a mapping")
        try:
            document = PolicyDocument.from_yaml(data)
        except ValidationError as exc:
            raise PolicyLoadError(
                bundle, f"invalid policy document {index} in {display}: {exc}"
            ) from exc
        loaded.append(LoadedPolicy(file=display, document=document))
    return loaded


def load_bundle(path: str) -> PolicyBundle:
    bundle_path = Path(path)
    if not bundle_path.exists():
        raise PolicyLoadError(path, "policy bundle not found")

    files = _policy_files(bundle_path)
    if not files:
        raise PolicyLoadError(path, "policy bundle contains no policy files")

    root = bundle_path if bundle_path.is_dir() else bundle_path.parent
    policies: list[LoadedPolicy] = []
    seen: dict[str, str] = {}
    for policy_file in files:
        for loaded in load_policy_file(policy_file, relative_to=root, bundle_path=path):
            package = loaded.document.package
            if package in seen:
                raise PolicyLoadError(
                    path,
                    f"duplicate policy package {package} in {loaded.file} "
                    f"(first defined in {seen[package]})",
                )
            seen[package] = loaded.file
            policies.append(loaded)
    return PolicyBundle(path=path, policies=tuple(policies))
