"""Git Tandem: keep groups of git repositories in step across hosting platforms.

This package provides the command-line interface, the per-platform credential
environment, and the synchronization engine that publishes a main repository
and mirrors or pulls it into its subordinate repositories.
"""

from . import (
    cli,
    config,
    constants,
    credentials,
    errors,
    fleet,
    git_wrapper,
    ops,
    remote,
    store,
    summary,
    sync,
    system,
    topology,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "credentials",
    "errors",
    "fleet",
    "git_wrapper",
    "ops",
    "remote",
    "store",
    "summary",
    "sync",
    "system",
    "topology",
]
