from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

DEFAULT_METADATA_ONLY_THRESHOLD_BYTES = 50 * 1024 * 1024


class Tier(str, Enum):
    FULL = "full"
    METADATA_ONLY = "metadata_only"


@dataclass(frozen=True)
class TieringPolicy:
    threshold_bytes: int = DEFAULT_METADATA_ONLY_THRESHOLD_BYTES

    def choose_tier(self, size_bytes: int) -> Tier:
        # Inclusive on the full side: a file exactly at the threshold keeps its bytes.
        if size_bytes < 0:
            raise ValueError(f"Media size cannot be negative: {size_bytes}")
        if size_bytes <= self.threshold_bytes:
            return Tier.FULL
        return Tier.METADATA_ONLY
