"""Exception hierarchy for canvaspipe.

Precondition failures (unknown kind, missing provider, missing input) and
adapter failures are caught by the step engine and recorded on the step;
only ``StepFailedError`` and ``StepReentryError`` reach callers directly.
"""


class CanvasPipeError(Exception):
    """Base class for all canvaspipe errors."""


class UnknownStepKindError(CanvasPipeError):
    """Raised when a step carries a kind the engine cannot dispatch."""


class ProviderNotFoundError(CanvasPipeError):
    """Raised when no adapter is registered for a provider key."""


class MissingInputAssetError(CanvasPipeError):
    """Raised when an edit-family step has no resolvable input asset."""


class StepReentryError(CanvasPipeError):
    """Raised when run_step is called on a step that is not queued."""

    def __init__(self, step_id: str, status: str):
        super().__init__(f"Step {step_id} cannot be run from status '{status}'")
        self.step_id = step_id
        self.status = status


class StepFailedError(CanvasPipeError):
    """Raised by generate_directly when the underlying step failed."""

    def __init__(self, step_id: str, error: str):
        super().__init__(error)
        self.step_id = step_id
        self.error = error


class ContentUnavailableError(CanvasPipeError):
    """Raised when a content URI cannot be dereferenced."""


class ProviderRequestError(CanvasPipeError):
    """Raised by HTTP adapters when the provider rejects or fails a request."""


class MaskError(CanvasPipeError):
    """Raised for unusable mask input or disallowed mask options."""


class MaskRejectedError(MaskError):
    """Raised when an invalid mask is submitted without allowing warnings."""

    def __init__(self, warnings: list[str]):
        detail = "; ".join(warnings) if warnings else "mask failed quality checks"
        super().__init__(f"Mask rejected: {detail}")
        self.warnings = warnings
