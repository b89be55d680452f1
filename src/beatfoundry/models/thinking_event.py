"""ThinkingEvent - one step pushed by the autonomous-thinking agent."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from beatfoundry.core.timezone import iso_timestamp


class ThinkingEvent(BaseModel):
    """Ephemeral event routed through the EventChannel by foundry id.

    Serialized with camelCase keys to match what UI subscribers expect.
    """

    model_config = ConfigDict(populate_by_name=True)

    foundry_id: str = Field(..., alias="foundryId")
    step: str = Field(..., min_length=1, description="Step tag (keywords, dream, initiative...)")
    content: Any = Field(default=None, description="Structured or free-text step content")
    timestamp: str = Field(default_factory=iso_timestamp)

    def to_wire(self) -> dict[str, Any]:
        """Dictionary form used in SSE frames."""
        return self.model_dump(by_alias=True)
