"""Parse ``sshd -T`` output into a directive -> values mapping."""

from __future__ import annotations

from collections.abc import Iterable

from ssh_compliance_plugin.evidence.models import StructuredConfig


def parse_sshd_config(lines: str | bytes | Iterable[str]) -> StructuredConfig:
    """Convert sshd configuration lines into a structured mapping.

    Directive names are lower-cased. Every whitespace separated token after the
    directive becomes a value, and repeated directives append to the same list
    in the order they appear. Blank lines and ``#`` comments are skipped.
    """
    if isinstance(lines, bytes):
        lines = lines.decode("utf-8", errors="replace")
    if isinstance(lines, str):
        lines = lines.splitlines()

    config: StructuredConfig = {}
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        directive, *values = line.split()
        config.setdefault(directive.lower(), []).extend(values)
    return config
