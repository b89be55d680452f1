"""KinOS client for the conversational agent behind each foundry."""

from typing import Any, Optional

import httpx
import structlog

from beatfoundry.services.exceptions import (
    AgentAuthError,
    AgentNetworkError,
    AgentRequestError,
    CoverGenerationError,
    raise_for_service_status,
)

logger = structlog.get_logger(__name__)


class KinosClient:
    """HTTP client for the agent service (channel messages, images, autonomous thinking).

    Foundries are "kins" of a blueprint on the agent service side.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.kinos-engine.ai/v2",
        blueprint_id: str = "beatfoundry",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize KinOS client.

        Args:
            api_key: Bearer token (from KINOS_API_KEY env var)
            base_url: API base URL
            blueprint_id: Blueprint that owns the foundries
            timeout: Per-request timeout in seconds. Autonomous thinking runs
                synchronously and may take much longer; see trigger_autonomous_thinking.
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.blueprint_id = blueprint_id
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _kin_url(self, kin_id: str, path: str) -> str:
        return f"{self.base_url}/blueprints/{self.blueprint_id}/kins/{kin_id}/{path}"

    async def _post(self, url: str, payload: dict[str, Any], timeout: float) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                response = await client.post(url, headers=self.headers, json=payload)
        except httpx.TimeoutException as e:
            raise AgentNetworkError(f"Request timeout after {timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise AgentNetworkError(f"Network error: {e}") from e

        raise_for_service_status(
            response,
            network_error=AgentNetworkError,
            auth_error=AgentAuthError,
            request_error=AgentRequestError,
            service="Agent service",
        )

        try:
            body = response.json()
        except ValueError as e:
            raise AgentRequestError(f"Agent service returned non-JSON body: {e}") from e
        if not isinstance(body, dict):
            raise AgentRequestError("Agent service returned an unexpected body shape")
        return body

    async def send_channel_message(
        self,
        kin_id: str,
        channel_id: str,
        content: str,
        *,
        mode: Optional[str] = None,
        add_system: Optional[str] = None,
        history_length: Optional[int] = None,
    ) -> dict[str, Any]:
        """Send a message to one of the foundry's channels and return the reply.

        Args:
            kin_id: Foundry identifier
            channel_id: Channel name (e.g. "tracks", "general")
            content: User message text
            mode: Response mode (creative, balanced, precise)
            add_system: Extra system instruction for this message only
            history_length: Number of previous messages to include as context

        Returns:
            Reply message ``{id, role, content, timestamp, ...}``

        Raises:
            AgentNetworkError: Network timeout, rate limit (429), 5xx
            AgentAuthError: Invalid API key (401, 403)
            AgentRequestError: Other 4xx or unreadable body
        """
        payload: dict[str, Any] = {"content": content}
        if mode:
            payload["mode"] = mode
        if add_system:
            payload["addSystem"] = add_system
        if history_length:
            payload["history_length"] = history_length

        logger.info("kinos.message.send", kin_id=kin_id, channel_id=channel_id)
        return await self._post(
            self._kin_url(kin_id, f"channels/{channel_id}/messages"), payload, self.timeout
        )

    async def generate_image(self, kin_id: str, prompt: str) -> str:
        """Generate a square cover image and return its temporary URL.

        Args:
            kin_id: Foundry identifier
            prompt: Image prompt

        Returns:
            URL of the generated image

        Raises:
            CoverGenerationError: Any failure (network, HTTP status, missing URL)
        """
        payload = {
            "prompt": prompt,
            "aspect_ratio": "ASPECT_1_1",
            "model": "V_2A",
            "magic_prompt_option": "AUTO",
        }
        try:
            body = await self._post(self._kin_url(kin_id, "images"), payload, self.timeout)
        except (AgentNetworkError, AgentAuthError, AgentRequestError) as e:
            raise CoverGenerationError(f"Image generation failed: {e}") from e

        data = body.get("data") or {}
        image_url = data.get("url") if isinstance(data, dict) else None
        if not image_url:
            raise CoverGenerationError("Image generation response carried no image URL")
        return str(image_url)

    async def trigger_autonomous_thinking(
        self,
        kin_id: str,
        *,
        iterations: int = 1,
        sync: bool = True,
        webhook_url: Optional[str] = None,
        timeout: float = 300.0,
    ) -> dict[str, Any]:
        """Start an autonomous-thinking run for a foundry.

        Intermediate steps are pushed to ``webhook_url`` as they happen.

        Args:
            kin_id: Foundry identifier
            iterations: Number of thinking iterations
            sync: Wait for the run to finish and return all steps
            webhook_url: Step-update webhook address
            timeout: Request timeout; sync runs take minutes

        Returns:
            Run summary from the agent service
        """
        payload: dict[str, Any] = {"iterations": iterations, "sync": sync}
        if webhook_url:
            payload["webhook_url"] = webhook_url

        logger.info("kinos.thinking.trigger", kin_id=kin_id, iterations=iterations, sync=sync)
        return await self._post(self._kin_url(kin_id, "autonomous_thinking"), payload, timeout)
