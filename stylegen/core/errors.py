from __future__ import annotations


class GenerationError(RuntimeError):
    """Base class for failures raised by the outfit generation pipeline."""


class PlanningFailed(GenerationError):
    """The style model was unreachable or returned unusable output."""


class PipelineAborted(GenerationError):
    """The pipeline cannot produce an outfit from the plan it received."""


class SourcingTransportError(GenerationError):
    """One retailer fetch attempt failed at the network or HTTP level."""


class ImageUploadError(GenerationError):
    """Re-hosting an image to durable storage failed."""


class GenerationStateError(GenerationError):
    """A generation record was finalized more than once."""


class QuotaExceeded(GenerationError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"You have used all {limit} free AI outfits for this month.")
        self.limit = limit
