"""Reconciliation of produced assets into persisted tracks.

Turns the asset list reported for one job into Track rows:

1. The first asset fills in the provisional track created at submission time
   (same ``source_job_id``, no ``audio_url`` yet) when there is one.
2. Every other asset becomes a new track, named "Title (Version n)" when the job
   produced more than one asset.
3. An asset whose ``audio_url`` was already seen in this pass, or is already
   stored for the foundry, is skipped. The store check makes repeated or racing
   completions for the same job harmless.
"""

import re
from typing import Optional

import structlog

from beatfoundry.models.produced_asset import ProducedAsset
from beatfoundry.models.track import Track
from beatfoundry.uow import UnitOfWorkFactory

logger = structlog.get_logger(__name__)

DEFAULT_TITLE = "Untitled"

# Section markers such as "[Verse 1]", "Chorus:" or "[Final Chorus]" at line start
_LYRICS_MARKER = re.compile(
    r"^\s*\[?[^\S\n]*(?:\w+\s+)?(?:verse|chorus|bridge|intro|outro)\b[^\n]*?(?:\]|:)",
    re.IGNORECASE | re.MULTILINE,
)


def looks_like_lyrics(text: str) -> bool:
    """Heuristic used when a free-text field may hold sung text."""
    return "\n" in text or bool(_LYRICS_MARKER.search(text))


def extract_prompt_and_lyrics(
    prompt: Optional[str], lyrics: Optional[str], placeholder_prompt: str
) -> tuple[Optional[str], Optional[str]]:
    """Split an asset's free-text fields into (prompt, lyrics).

    - An explicit ``lyrics`` value is kept as is.
    - Otherwise a ``prompt`` that looks like lyrics moves into ``lyrics`` and the
      prompt becomes the placeholder.
    - Otherwise ``prompt`` stays a prompt; lyrics are never derived from it.
    - When only lyrics are known, the prompt is the placeholder.
    """
    prompt = (prompt or "").strip() or None
    lyrics = (lyrics or "").strip() or None

    if lyrics:
        return prompt or placeholder_prompt, lyrics
    if prompt and looks_like_lyrics(prompt):
        return placeholder_prompt, prompt
    return prompt, None


def version_name(title: str, index: int, total: int) -> str:
    """Name of the index-th asset of a job that produced ``total`` assets."""
    if total > 1 and index > 0:
        return f"{title} (Version {index + 1})"
    return title


class TrackReconciler:
    """Persists a job's produced assets without creating duplicates.

    Callers serialize completions of the same foundry (see
    JobCompletionHandler); a completion without a job id and the job's own
    completion may otherwise both miss the store check.
    """

    def __init__(self, uow_factory: UnitOfWorkFactory, placeholder_prompt: str):
        self.uow_factory = uow_factory
        self.placeholder_prompt = placeholder_prompt

    async def reconcile(
        self,
        foundry_id: str,
        job_id: Optional[str],
        assets: list[ProducedAsset],
    ) -> list[Track]:
        """Reconcile one completion event.

        Args:
            foundry_id: Foundry that owns the tracks
            job_id: Synthesis job id, None when a callback did not report one
            assets: Produced assets in the order received

        Returns:
            Tracks created or updated in this pass (to be materialized)
        """
        if not assets:
            logger.info("reconcile.no_assets", foundry_id=foundry_id, job_id=job_id)
            return []

        touched: list[Track] = []
        seen_urls: set[str] = set()

        async with await self.uow_factory() as uow:
            provisional = await uow.tracks.get_by_source_job_id(job_id) if job_id else None
            base_title = assets[0].title or (provisional.name if provisional else DEFAULT_TITLE)

            for index, asset in enumerate(assets):
                if asset.audio_url in seen_urls:
                    logger.info(
                        "reconcile.duplicate_in_pass",
                        job_id=job_id,
                        audio_url=asset.audio_url,
                    )
                    continue
                seen_urls.add(asset.audio_url)

                prompt, lyrics = extract_prompt_and_lyrics(
                    asset.prompt, asset.lyrics, self.placeholder_prompt
                )

                if index == 0 and provisional is not None:
                    if provisional.audio_url == asset.audio_url:
                        logger.info(
                            "reconcile.already_reconciled",
                            job_id=job_id,
                            track_id=str(provisional.id),
                        )
                        continue
                    if provisional.audio_url is None:
                        stored = await uow.tracks.get_by_audio_url(foundry_id, asset.audio_url)
                        if stored is not None:
                            # Saved earlier by a completion that carried no job id
                            await uow.tracks.adopt_provisional(stored, provisional)
                            logger.info(
                                "reconcile.provisional_adopted",
                                job_id=job_id,
                                track_id=str(stored.id),
                                provisional_id=str(provisional.id),
                            )
                            continue

                        # Agent-provided text on the provisional record wins
                        provisional.prompt = provisional.prompt or prompt
                        provisional.lyrics = provisional.lyrics or lyrics
                        provisional.style = provisional.style or asset.tags
                        await uow.tracks.update_audio_url(provisional, asset.audio_url)
                        touched.append(provisional)
                        logger.info(
                            "reconcile.provisional_updated",
                            job_id=job_id,
                            track_id=str(provisional.id),
                            audio_url=asset.audio_url,
                        )
                        continue

                existing = await uow.tracks.get_by_audio_url(foundry_id, asset.audio_url)
                if existing is not None:
                    logger.info(
                        "reconcile.already_stored",
                        job_id=job_id,
                        track_id=str(existing.id),
                        audio_url=asset.audio_url,
                    )
                    continue

                title = asset.title or base_title
                track = Track(
                    foundry_id=foundry_id,
                    name=version_name(title, index, len(assets)),
                    prompt=prompt,
                    lyrics=lyrics,
                    style=asset.tags,
                    audio_url=asset.audio_url,
                    # Only the first asset of a job keeps the job id
                    source_job_id=job_id if index == 0 else None,
                )
                await uow.tracks.add(track)
                touched.append(track)
                logger.info(
                    "reconcile.track_created",
                    job_id=job_id,
                    track_id=str(track.id),
                    name=track.name,
                    audio_url=asset.audio_url,
                )

        logger.info(
            "reconcile.completed",
            foundry_id=foundry_id,
            job_id=job_id,
            assets=len(assets),
            tracks=len(touched),
        )
        return touched
