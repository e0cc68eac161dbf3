"""
Error taxonomy for the quiz generation pipeline.

RecaptureRequiredError is the only error end users should see as
"please retake the photo"; everything else is infrastructure.
"""

import math

DEFAULT_RECAPTURE_MESSAGE = (
    "The photos are unclear or the page is incomplete. "
    "Photograph the whole page again with better lighting."
)
UNCLEAR_PAGES_MESSAGE = "Some pages could not be read. Photograph them again, sharp and in good light."
UNGROUNDED_MESSAGE = "The questions could not be matched to the text in the photos. Photograph the whole page again."
REFUSED_MESSAGE = "The photos do not contain enough readable lesson content. Try clearer photos of the book pages."
SPOT_CHECK_FAILED_MESSAGE = "The text read from the photos does not match the pages. Retake the photos so every page is complete."
NOT_ENOUGH_QUESTIONS_MESSAGE = "We could not generate enough questions. Try again with clearer photos."


class QuizGenerationError(Exception):
    code = "QUIZ_GENERATION_FAILED"


class RecaptureRequiredError(QuizGenerationError):
    """The source images cannot support a trustworthy quiz."""
    code = "RECAPTURE_REQUIRED"

    def __init__(self, message: str = DEFAULT_RECAPTURE_MESSAGE):
        super().__init__(message)
        self.reason = message


class ValidationUnavailableError(QuizGenerationError):
    """The grounding validation capability is unreachable altogether."""
    code = "VALIDATION_UNAVAILABLE"
    http_status = 503

    def __init__(self, message: str = "Validation service is currently unavailable. Try again."):
        super().__init__(message)


class CircuitOpenError(QuizGenerationError):
    """A provider is short-circuited after repeated failures."""
    code = "CIRCUIT_OPEN"

    def __init__(self, provider: str, retry_after: float):
        super().__init__(
            f"Circuit breaker open for {provider}. Retry after {math.ceil(max(0.0, retry_after))}s"
        )
        self.provider = provider
        self.retry_after = retry_after


class ResponseParseError(ValueError):
    """Model output could not be turned into quiz content."""
