"""Parsing helpers for synthesis-service status envelopes and callbacks."""

from typing import Any, Iterable, Optional

import structlog

from beatfoundry.models.produced_asset import ProducedAsset

logger = structlog.get_logger(__name__)


def extract_status(envelope: dict[str, Any]) -> Optional[str]:
    """Read the job status from a status envelope.

    The status lives at ``data.response.status`` once generation started and at
    ``data.status`` before that.
    """
    data = envelope.get("data") or {}
    if not isinstance(data, dict):
        return None
    response = data.get("response") or {}
    status = (response.get("status") if isinstance(response, dict) else None) or data.get(
        "status"
    )
    return str(status) if status else None


def extract_status_assets(envelope: dict[str, Any], job_id: str) -> list[ProducedAsset]:
    """Read produced assets from ``data.response.sunoData``."""
    data = envelope.get("data") or {}
    response = data.get("response") if isinstance(data, dict) else None
    items = response.get("sunoData") if isinstance(response, dict) else None
    return parse_assets(items or [], job_id)


def extract_callback_assets(body: dict[str, Any]) -> tuple[Optional[str], list[ProducedAsset]]:
    """Read the job id and produced assets from a completion callback body.

    Callback shape: ``{code: 200, data: {task_id, data: [{audio_url, ...}]}}``.

    Returns:
        Tuple of (job id if reported, assets)
    """
    data = body.get("data") or {}
    if isinstance(data, list):
        return None, parse_assets(data, None)
    if not isinstance(data, dict):
        logger.warning("suno.callback.unexpected_data", data_type=type(data).__name__)
        return None, []

    job_id = data.get("task_id") or data.get("taskId")
    items = data.get("data") or []
    if not isinstance(items, list):
        items = []
    job_id = str(job_id) if job_id else None
    return job_id, parse_assets(items, job_id)


def parse_assets(items: Iterable[Any], job_id: Optional[str]) -> list[ProducedAsset]:
    """Convert raw items to ProducedAsset, dropping items without audio."""
    assets = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("suno.asset.skipped", job_id=job_id, index=index, reason="not_object")
            continue
        try:
            assets.append(ProducedAsset.from_payload(item, job_id))
        except ValueError as e:
            logger.warning("suno.asset.skipped", job_id=job_id, index=index, reason=str(e))
    return assets
