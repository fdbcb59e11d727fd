"""Exceptions raised inside the safety pipeline.

Only :class:`PersistenceFailure` is meant to reach the caller of the
pipeline; the others are recovered at the component that owns the failing
dependency.
"""


class SafetyPipelineError(Exception):
    """Base class for safety pipeline errors."""


class ClassificationUnavailable(SafetyPipelineError):
    """The external classifier errored, timed out or returned garbage."""


class PolicyReadFailure(SafetyPipelineError):
    """User or guild safety settings could not be read."""


class PersistenceFailure(SafetyPipelineError):
    """An escalation record could not be written."""


class DownstreamActionFailure(SafetyPipelineError):
    """An alert, direct message or platform action could not be executed."""
