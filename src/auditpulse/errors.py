"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     Error taxonomy for the ingest pipeline and policy loader.
--------------------------------------------------------------------------------
"""


class AuditPulseError(Exception):
    """Base class for every error raised by AuditPulse."""


class MalformedInputError(AuditPulseError):
    """The raw report is empty or is neither text nor a JSON object."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(
            f"Unexpected audit report format: {reason}. Run an audit first."
        )


class IngestInProgressError(AuditPulseError):
    """A second ingest was attempted while another one was still running."""

    def __init__(self):
        super().__init__("Another audit report is still being ingested.")


class PolicyError(AuditPulseError):
    """The scoring policy file could not be loaded or is invalid."""
