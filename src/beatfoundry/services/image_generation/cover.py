"""Cover art generators used by the asset pipeline."""

from typing import Optional, Protocol

import structlog

from beatfoundry.core.config import Settings
from beatfoundry.services.image_generation.replicate_client import (
    ContentPolicyError,
    generate_image,
)
from beatfoundry.services.kinos.client import KinosClient

logger = structlog.get_logger(__name__)

# Used when the image model refuses the track-derived prompt
NEUTRAL_COVER_PROMPT = (
    "Abstract album cover art with soft gradients and geometric shapes, "
    "no text, professional studio quality"
)


class CoverImageGenerator(Protocol):
    """Turns an image prompt into a downloadable image URL."""

    async def generate(self, foundry_id: str, prompt: str) -> str: ...


def build_cover_prompt(title: str, prompt: Optional[str], style: Optional[str] = None) -> str:
    """Synthesize an album cover prompt from a track's title and prompt text."""
    genre = f"{style} " if style else ""
    description = f" The music is described as: {prompt}." if prompt else ""
    return (
        f'Album cover art for a {genre}song titled "{title}".{description} '
        "Create a visually striking, professional album cover that captures "
        "the essence of the music."
    )


class KinosCoverGenerator:
    """Generates covers through the foundry's own image endpoint."""

    def __init__(self, kinos: KinosClient):
        self.kinos = kinos

    async def generate(self, foundry_id: str, prompt: str) -> str:
        return await self.kinos.generate_image(foundry_id, prompt)


class ReplicateCoverGenerator:
    """Generates covers with a Replicate image model."""

    def __init__(self, api_token: str, model_version: Optional[str] = None):
        self.api_token = api_token
        self.model_version = model_version

    async def generate(self, foundry_id: str, prompt: str) -> str:
        try:
            return await generate_image(prompt, self.api_token, self.model_version)
        except ContentPolicyError:
            logger.warning("cover.censored", foundry_id=foundry_id, reason="content_policy")
            return await generate_image(NEUTRAL_COVER_PROMPT, self.api_token, self.model_version)


def create_cover_generator(settings: Settings, kinos: KinosClient) -> CoverImageGenerator:
    """Pick the configured cover image provider."""
    if settings.cover_image_provider == "replicate":
        return ReplicateCoverGenerator(
            api_token=settings.replicate_api_token,
            model_version=settings.replicate_model_version,
        )
    return KinosCoverGenerator(kinos)
