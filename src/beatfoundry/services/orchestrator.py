"""Track creation: agent-designed parameters submitted to the synthesis service."""

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

import structlog

from beatfoundry.core.config import Settings
from beatfoundry.models.track import Track
from beatfoundry.services.exceptions import AgentResponseParseError, ServiceError
from beatfoundry.services.kinos.client import KinosClient
from beatfoundry.services.suno.client import SunoClient
from beatfoundry.uow import UnitOfWorkFactory

if TYPE_CHECKING:
    from beatfoundry.workers.job_poller import JobTracker

logger = structlog.get_logger(__name__)

TRACKS_CHANNEL = "tracks"
GENERAL_CHANNEL = "general"

_FIELDS = (
    "1) 'prompt': a brief list of keywords for style, sonorities, and emotions "
    "(no more than 10-15 words total){source}, "
    "2) 'style': a specific music genre or style{style_hint}, "
    "3) 'title': a creative title for the track{title_hint}, "
)
_PRESENTATION = (
    "'presentation': a brief artistic explanation of the concept behind this track (2-3 sentences)"
)
_FORMAT = "Format your response as valid JSON without any additional text."


def build_instructions(instrumental: bool, from_thinking: bool) -> str:
    """System instruction that forces a JSON-only reply from the agent."""
    if from_thinking:
        lead = (
            "You are receiving thoughts from an AI musician's autonomous thinking process. "
            "Create a JSON object containing: "
        )
        fields = _FIELDS.format(
            source=" based on these thoughts",
            style_hint=" that fits the thoughts",
            title_hint=" inspired by the thoughts",
        )
        lyrics = "'lyrics': complete lyrics for the track that reflect the thoughts"
    else:
        lead = "Respond only with a JSON object containing: "
        fields = _FIELDS.format(
            source="",
            style_hint=" (e.g., 'Jazz', 'Classical', 'Electronic')",
            title_hint="",
        )
        lyrics = "'lyrics': complete lyrics for the track"

    if instrumental:
        return (
            f"{lead}{fields}and 4) {_PRESENTATION}. {_FORMAT} "
            "This will be an instrumental track without lyrics."
        )
    return f"{lead}{fields}4) {_PRESENTATION}, and 5) {lyrics}. {_FORMAT}"


def required_fields(instrumental: bool) -> tuple[str, ...]:
    if instrumental:
        return ("prompt", "style", "title")
    return ("prompt", "style", "title", "lyrics")


def parse_music_parameters(content: Any, instrumental: bool = False) -> dict[str, Any]:
    """Parse the agent reply into music parameters.

    Accepts an already structured value or a JSON-encoded string, optionally
    wrapped in a Markdown code fence.

    Raises:
        AgentResponseParseError: Not JSON, not an object, or a required field is missing
    """
    if isinstance(content, str):
        text = content.strip()
        if text.startswith("```"):
            text = text.strip("`")
            text = text[4:] if text.lower().startswith("json") else text
        try:
            content = json.loads(text)
        except ValueError as e:
            raise AgentResponseParseError(f"Agent reply is not valid JSON: {e}") from e

    if not isinstance(content, dict):
        raise AgentResponseParseError("Agent reply is not a JSON object")

    missing = [name for name in required_fields(instrumental) if not content.get(name)]
    if missing:
        raise AgentResponseParseError(
            f"Agent reply lacks required music parameters: {', '.join(missing)}"
        )
    return content


def presentation_message(parameters: dict[str, Any]) -> str:
    return (
        f"**Song Concept: {parameters['title']}**\n\n"
        f"{parameters['presentation']}\n\n"
        f"*Style: {parameters['style']}*"
    )


@dataclass
class TrackCreationResult:
    """Outcome of createTrack.

    ``job_id`` is None on partial success: the agent designed the track but the
    synthesis service did not accept it.
    """

    message: dict[str, Any]
    parameters: dict[str, Any]
    job_id: Optional[str] = None
    track_id: Optional[str] = None
    errors: list[str] = field(default_factory=list)

    def music_parameters(self) -> dict[str, Any]:
        return {
            "prompt": self.parameters.get("prompt"),
            "style": self.parameters.get("style"),
            "title": self.parameters.get("title"),
            "lyrics": self.parameters.get("lyrics"),
        }


class TrackCreationOrchestrator:
    """User-facing entry point for track creation."""

    def __init__(
        self,
        kinos: KinosClient,
        suno: SunoClient,
        uow_factory: UnitOfWorkFactory,
        settings: Settings,
        job_tracker: Optional["JobTracker"] = None,
    ):
        self.kinos = kinos
        self.suno = suno
        self.uow_factory = uow_factory
        self.settings = settings
        self.job_tracker = job_tracker

    async def create_track(
        self,
        foundry_id: str,
        user_prompt: str,
        instrumental: bool = False,
        from_thinking: bool = False,
    ) -> TrackCreationResult:
        """Ask the agent for music parameters and submit them for synthesis.

        Steps:
        1. Send the prompt to the foundry's tracks channel with a JSON-only instruction
        2. Parse and validate the reply
        3. Post the optional presentation to the general channel (failure ignored)
        4. Submit lyrics (or the prompt for instrumentals) and style for synthesis
        5. Record a provisional track and start polling the job

        Raises:
            AgentNetworkError, AgentAuthError, AgentRequestError: Agent call failed
            AgentResponseParseError: Reply is unusable; nothing is created
        """
        logger.info(
            "track.create.started",
            foundry_id=foundry_id,
            instrumental=instrumental,
            from_thinking=from_thinking,
        )

        reply = await self.kinos.send_channel_message(
            foundry_id,
            TRACKS_CHANNEL,
            user_prompt,
            mode="creative",
            add_system=build_instructions(instrumental, from_thinking),
            history_length=10,
        )
        parameters = parse_music_parameters(reply.get("content"), instrumental)
        result = TrackCreationResult(message=reply, parameters=parameters)

        if parameters.get("presentation"):
            await self._post_presentation(foundry_id, parameters)

        sung_text = parameters["prompt"] if instrumental else parameters["lyrics"]
        try:
            job_id = await self.suno.generate(
                prompt=sung_text,
                style=parameters["style"],
                title=parameters["title"],
                callback_url=self.settings.callback_url(foundry_id),
                instrumental=instrumental,
            )
        except ServiceError as e:
            logger.error(
                "track.create.synthesis_failed",
                foundry_id=foundry_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            result.errors.append(str(e))
            return result

        result.job_id = job_id
        try:
            track = await self._create_provisional(foundry_id, job_id, parameters, instrumental)
            result.track_id = str(track.id)
        except Exception as e:
            # The job is already submitted; the poller still saves its assets
            logger.error(
                "track.create.provisional_failed",
                foundry_id=foundry_id,
                job_id=job_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            result.errors.append(f"Provisional track not stored: {e}")

        if self.job_tracker is not None:
            self.job_tracker.start_polling(job_id, parameters["title"], foundry_id)

        logger.info(
            "track.create.submitted",
            foundry_id=foundry_id,
            job_id=job_id,
            track_id=result.track_id,
        )
        return result

    async def _post_presentation(self, foundry_id: str, parameters: dict[str, Any]) -> None:
        try:
            await self.kinos.send_channel_message(
                foundry_id, GENERAL_CHANNEL, presentation_message(parameters), mode="creative"
            )
        except ServiceError as e:
            logger.warning("track.presentation_failed", foundry_id=foundry_id, error=str(e))

    async def _create_provisional(
        self,
        foundry_id: str,
        job_id: str,
        parameters: dict[str, Any],
        instrumental: bool,
    ) -> Track:
        track = Track(
            foundry_id=foundry_id,
            name=parameters["title"],
            prompt=parameters["prompt"],
            lyrics=None if instrumental else parameters.get("lyrics"),
            style=parameters["style"],
            source_job_id=job_id,
        )
        async with await self.uow_factory() as uow:
            await uow.tracks.add(track)
        return track
