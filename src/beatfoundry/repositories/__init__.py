"""Repository layer for the BeatFoundry backend.

Provides data access abstractions for persisted domain entities.
No base classes - each repository is self-contained.
"""

from beatfoundry.repositories.track import TrackRepository

__all__ = [
    "TrackRepository",
]
