"""
Errors shared by the command-line surface.

`UsageError` marks invalid invocations (bad flags, missing app ID, unknown
``--include`` sections); the CLI maps it to exit status 2.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    pass


class UsageError(PipelineError):
    """The command was invoked with invalid arguments."""


__all__ = ["PipelineError", "UsageError"]
