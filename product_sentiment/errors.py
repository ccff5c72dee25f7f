"""
Error taxonomy for the sentiment pipeline.

Stage-level errors (UnresolvableIdentifier, FetchFailed) propagate out of
their activity and terminate the run. ScoringDegraded never leaves the
scorer: it is caught per review and replaced with a fallback score.

Activities translate these into Temporal ApplicationErrors whose ``type`` is
the class name, so the workflow and callers can tell them apart after
serialization.
"""

# Failure types raised by the workflow after an activity gives up
STAGE_TIMEOUT = "StageTimeout"
STAGE_RETRY_EXHAUSTED = "StageRetryExhausted"


class PipelineError(Exception):
    """Base class for sentiment pipeline errors."""


class UnresolvableIdentifier(PipelineError):
    """
    The input could not be mapped to a product identifier.

    Attributes:
        retryable: False when the identifier oracle answered but its answer
            was an error or invalid; True when the oracle was unreachable
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class FetchFailed(PipelineError):
    """The first page of reviews could not be retrieved."""


class ScoringDegraded(PipelineError):
    """A single review could not be scored remotely."""
