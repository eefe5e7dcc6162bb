"""Shared base for models that cross the archive / remote wire boundary."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Epoch milliseconds, the timestamp unit used in archives and manifests."""
    return int(time.time() * 1000)


class WireModel(BaseModel):
    """Serialized with camelCase keys; unknown keys are preserved on round-trip."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = ["WireModel", "now_ms"]
