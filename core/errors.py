"""Error taxonomy shared by every stage."""


class PipelineError(Exception):
    """Base class for errors raised by pipeline collaborators."""


class TransportError(PipelineError):
    """Network failure or timeout on an external call."""


class ParseError(PipelineError):
    """A response did not contain the expected structured payload."""


class ProviderError(PipelineError):
    """A deployment or search provider reported a domain-level failure."""


class ConfigError(PipelineError):
    """A required credential or setting is missing."""


class DeploymentError(PipelineError):
    """A deploy call failed. Carries the log lines collected before the failure."""

    def __init__(self, message, provider="", logs=None, cause=None):
        super().__init__(message)
        self.provider = provider
        self.logs = list(logs or [])
        self.cause = cause
