"""Error taxonomy of the generation pipeline."""


class PipelineError(Exception):
    """Base class for every error the pipeline raises on purpose."""


class ConfigurationError(PipelineError):
    """Credentials or settings are missing; raised before any network call."""


class SubmissionError(PipelineError):
    """The generation backend rejected the request synchronously."""


class TransientError(PipelineError):
    """Network failure or 5xx; the poller retries it within its budget."""


class TerminalGenerationFailure(PipelineError):
    """The backend reported ``fail``, or ``success`` without a usable result."""


class GenerationTimeout(PipelineError, TimeoutError):
    """The poll budget ran out before the task reached a terminal state."""


class PostProcessError(PipelineError):
    """A required post-processing step failed."""


class UpscaleError(PipelineError):
    """The reference image could not be upscaled. Always advisory."""


class PublishError(PipelineError):
    """One publish target failed. Captured per target, never escalated."""


class PersistenceError(PipelineError):
    """The job store could not be read or written."""


class JobNotFound(PipelineError, KeyError):
    pass


class JobAlreadyRunning(PipelineError):
    """A second run was requested for a job id that already has an owner."""


class InvalidTransition(PipelineError, RuntimeError):
    """A job status change that breaks pending -> processing -> terminal."""


class JobNotRetryable(PipelineError):
    """Only failed jobs can be retried."""
