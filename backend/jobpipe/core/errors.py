from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors raised by pipeline stages."""


class AdapterFetchError(PipelineError):
    """A source could not be fetched or parsed. Fatal for the whole run."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class RunCancelled(AdapterFetchError):
    """The run's cancellation flag was set while a stage was in progress."""


class NormalizationRejection(PipelineError):
    """A listing is missing a field the canonical record requires."""

    def __init__(self, reason: str, external_id: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.external_id = external_id


class ClassificationFailure(PipelineError):
    """One job could not be classified. The job stays pending."""

    def __init__(self, reason: str, job_id: int | None = None):
        super().__init__(reason)
        self.reason = reason
        self.job_id = job_id


class AnnouncementFailure(PipelineError):
    """A batch of URLs was not accepted by a search-index endpoint."""


class IdentityConflictError(PipelineError):
    """Two writers raced on the same identity key."""


class UnknownEmployer(PipelineError):
    pass


class InvalidTransition(PipelineError):
    def __init__(self, state, event):
        super().__init__(f"no transition from {state} on {event}")
        self.state = state
        self.event = event
