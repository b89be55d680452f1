"""Replicate API client for cover image generation with error classification."""

import asyncio
from typing import Any, Optional

import replicate
from replicate.exceptions import ReplicateError as ReplicateAPIError

from beatfoundry.services.exceptions import CoverGenerationError


class ReplicateCoverError(CoverGenerationError):
    """Base class for categorized Replicate API errors."""

    retryable: bool = False


class ReplicateTransientError(ReplicateCoverError):
    """Network, rate limit or service unavailability."""

    retryable = True


class ContentPolicyError(ReplicateCoverError):
    """Content policy violation - retry with a neutral prompt."""

    retryable = True


class ReplicatePermanentError(ReplicateCoverError):
    """Authentication, validation or unexpected output."""

    retryable = False


def classify_error(exception: Exception) -> ReplicateCoverError:
    """Classify exception into retry category.

    Classification rules:
        - Timeout, 429, 503, connection errors → ReplicateTransientError
        - 401/403 (authentication) → ReplicatePermanentError
        - Content policy violations → ContentPolicyError
        - Anything else → ReplicatePermanentError
    """
    error_message = str(exception)
    lowered = error_message.lower()

    if "timeout" in lowered:
        return ReplicateTransientError(f"Network timeout: {error_message}")

    if "429" in error_message or "rate limit" in lowered:
        return ReplicateTransientError(f"Rate limit exceeded: {error_message}")

    if "503" in error_message or "service unavailable" in lowered:
        return ReplicateTransientError(f"Service unavailable: {error_message}")

    if any(
        marker in lowered
        for marker in ("401", "403", "unauthorized", "forbidden", "authentication")
    ):
        return ReplicatePermanentError(f"Authentication failed: {error_message}")

    if any(marker in lowered for marker in ("content policy", "nsfw", "safety", "inappropriate")):
        return ContentPolicyError(f"Content policy violation: {error_message}")

    if isinstance(exception, (ConnectionError, OSError)):
        return ReplicateTransientError(f"Connection error: {error_message}")

    return ReplicatePermanentError(f"Permanent error: {error_message}")


async def generate_image(prompt: str, api_token: str, model_version: Optional[str] = None) -> str:
    """Generate an image using the Replicate API.

    Args:
        prompt: Text prompt for image generation
        api_token: Replicate API authentication token
        model_version: Model identifier (default: "black-forest-labs/flux-schnell")

    Returns:
        Image URL from Replicate CDN

    Raises:
        ReplicateTransientError: Temporary failure
        ContentPolicyError: Prompt rejected by the safety filter
        ReplicatePermanentError: Permanent failure
    """
    if not api_token:
        raise ReplicatePermanentError("REPLICATE_API_TOKEN not configured")

    model = model_version or "black-forest-labs/flux-schnell"
    client = replicate.Client(api_token=api_token)

    try:
        # SDK call is synchronous
        output: Any = await asyncio.to_thread(client.run, model, input={"prompt": prompt})
    except ReplicateAPIError as e:
        raise classify_error(e) from e
    except (ConnectionError, OSError, TimeoutError) as e:
        raise classify_error(e) from e

    # Output format varies by model
    if isinstance(output, list) and output:
        return str(output[0])
    if isinstance(output, str):
        return output
    raise ReplicatePermanentError(f"Unexpected output format from Replicate: {type(output)}")
