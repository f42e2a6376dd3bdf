"""Continuous-compliance plugin evaluating sshd configuration against policy bundles."""

__version__ = "0.4.0"
