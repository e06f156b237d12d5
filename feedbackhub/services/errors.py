"""
Service-layer exceptions. The API maps these to HTTP status codes.
"""


class FeedbackHubError(Exception):
    """Base class for expected service errors."""


class NotFoundError(FeedbackHubError):
    """Project or feedback does not exist or is not owned by the tenant."""


class LimitExceededError(FeedbackHubError):
    """The tenant's plan does not allow the requested resource."""


class ValidationError(FeedbackHubError):
    """Input is unusable after sanitization."""


class ClassificationError(FeedbackHubError):
    """The AI classification attempt failed; callers fall back to keywords."""
