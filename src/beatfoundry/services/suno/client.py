"""SUNO API box client for music generation and job status queries."""

from typing import Any, Optional

import httpx
import structlog

from beatfoundry.services.exceptions import (
    SynthesisAuthError,
    SynthesisNetworkError,
    SynthesisRequestError,
    raise_for_service_status,
)

logger = structlog.get_logger(__name__)


class SunoClient:
    """HTTP client for the music synthesis service."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://apibox.erweima.ai/api/v1",
        model: str = "V4",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize SUNO client.

        Args:
            api_key: Bearer token (from SUNO_API_KEY env var)
            base_url: API base URL
            model: Generation model identifier (V3_5 or V4)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def generate(
        self,
        *,
        prompt: str,
        style: str,
        title: str,
        callback_url: str,
        instrumental: bool = False,
    ) -> str:
        """Submit a custom-mode generation request.

        Args:
            prompt: Sung text (lyrics), or the sonic prompt for instrumentals
            style: Sonic description / genre
            title: Track title
            callback_url: Address the service calls on completion
            instrumental: Request a track without vocals

        Returns:
            Job identifier assigned by the service

        Raises:
            SynthesisNetworkError: Network timeout, rate limit (429), 5xx
            SynthesisAuthError: Invalid API key (401, 403)
            SynthesisRequestError: Other 4xx, non-200 envelope code or missing job id
        """
        payload = {
            "prompt": prompt,
            "style": style,
            "title": title,
            "customMode": True,
            "instrumental": instrumental,
            "model": self.model,
            "callBackUrl": callback_url,
        }

        logger.info("suno.generate.request", title=title, instrumental=instrumental)

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/generate", headers=self.headers, json=payload
                )
        except httpx.TimeoutException as e:
            raise SynthesisNetworkError(f"Request timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise SynthesisNetworkError(f"Network error: {e}") from e

        raise_for_service_status(
            response,
            network_error=SynthesisNetworkError,
            auth_error=SynthesisAuthError,
            request_error=SynthesisRequestError,
            service="Synthesis service",
        )

        body = _json_body(response)
        if body.get("code") not in (None, 200):
            raise SynthesisRequestError(
                body.get("msg") or f"Generation rejected with code {body.get('code')}"
            )

        data = body.get("data") or {}
        job_id = data.get("task_id") or data.get("taskId")
        if not job_id:
            raise SynthesisRequestError("Generation response carried no task id")

        logger.info("suno.generate.accepted", job_id=job_id, title=title)
        return str(job_id)

    async def get_record_info(self, job_id: str) -> dict[str, Any]:
        """Query the status envelope for a job.

        Args:
            job_id: Job identifier returned by generate()

        Returns:
            Raw envelope ``{code, msg, data: {...}}``

        Raises:
            SynthesisNetworkError: Network timeout, rate limit (429), 5xx
            SynthesisAuthError: Invalid API key (401, 403)
            SynthesisRequestError: Other 4xx
        """
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/generate/record-info",
                    headers=self.headers,
                    params={"taskId": job_id},
                )
        except httpx.TimeoutException as e:
            raise SynthesisNetworkError(f"Request timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise SynthesisNetworkError(f"Network error: {e}") from e

        raise_for_service_status(
            response,
            network_error=SynthesisNetworkError,
            auth_error=SynthesisAuthError,
            request_error=SynthesisRequestError,
            service="Synthesis service",
        )
        return _json_body(response)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as e:
        raise SynthesisRequestError(f"Synthesis service returned non-JSON body: {e}") from e
    if not isinstance(body, dict):
        raise SynthesisRequestError("Synthesis service returned an unexpected body shape")
    return body
