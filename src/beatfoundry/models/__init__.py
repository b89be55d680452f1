"""Domain entities.

Table models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from beatfoundry.models.generation_job import (
    GenerationJob,
    InvalidStateTransition,
    JobStatus,
    is_terminal_status,
)
from beatfoundry.models.produced_asset import ProducedAsset
from beatfoundry.models.thinking_event import ThinkingEvent
from beatfoundry.models.track import SUPPORTED_REACTIONS, Track

__all__ = [
    "Track",
    "SUPPORTED_REACTIONS",
    "GenerationJob",
    "JobStatus",
    "InvalidStateTransition",
    "is_terminal_status",
    "ProducedAsset",
    "ThinkingEvent",
]
