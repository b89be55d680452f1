"""Service error hierarchy for upstream collaborators.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts, 5xx)
- PermanentError: Non-retryable errors (authentication, validation, malformed replies)
"""

import httpx


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (5xx)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Upstream reply that cannot be interpreted
    """

    pass


# Music synthesis service errors
class SynthesisNetworkError(TransientError):
    """Network timeout or synthesis service unavailable."""

    pass


class SynthesisAuthError(PermanentError):
    """Synthesis service rejected the API key (401, 403)."""

    pass


class SynthesisRequestError(PermanentError):
    """Synthesis service rejected the request (4xx or non-200 envelope code)."""

    pass


# Conversational agent errors
class AgentNetworkError(TransientError):
    """Network timeout or agent service unavailable."""

    pass


class AgentAuthError(PermanentError):
    """Agent service rejected the API key (401, 403)."""

    pass


class AgentRequestError(PermanentError):
    """Agent service rejected the request (other 4xx)."""

    pass


class AgentResponseParseError(PermanentError):
    """Agent reply is not valid JSON or lacks required music parameters."""

    pass


# Asset pipeline errors
class AssetDownloadError(TransientError):
    """Audio or image bytes could not be fetched."""

    pass


class CoverGenerationError(ServiceError):
    """Cover image generation failed (never fatal for the track)."""

    pass


def raise_for_service_status(
    response: httpx.Response,
    *,
    network_error: type[TransientError],
    auth_error: type[PermanentError],
    request_error: type[PermanentError],
    service: str,
) -> None:
    """Classify an HTTP error response into the service error hierarchy.

    Classification rules:
        - 429 (rate limit) → network_error (transient)
        - 5xx → network_error (transient)
        - 401/403 → auth_error (permanent)
        - other 4xx → request_error (permanent)

    Args:
        response: Upstream response to inspect
        network_error: Transient error class for this collaborator
        auth_error: Authentication error class for this collaborator
        request_error: Request error class for this collaborator
        service: Human-readable collaborator name used in messages

    Raises:
        TransientError: For retryable statuses
        PermanentError: For non-retryable statuses
    """
    code = response.status_code
    if code < 400:
        return

    body = response.text[:500]
    if code == 429:
        raise network_error(f"{service} rate limit exceeded: {body}")
    if code >= 500:
        raise network_error(f"{service} unavailable ({code}): {body}")
    if code in (401, 403):
        raise auth_error(
            f"{service} rejected credentials ({code}). Check the API key in your .env file."
        )
    raise request_error(f"{service} rejected request ({code}): {body}")
