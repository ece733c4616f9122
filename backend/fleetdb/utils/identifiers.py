from __future__ import annotations

import os
import re
import time
import uuid
from typing import Optional

CAF_NUMBER_RE = re.compile(r"^CAF-(?P<year>\d{4})-(?P<seq>\d+)$")


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    UUIDv7 layout per draft:
    - 48-bit Unix timestamp in milliseconds
    - 4-bit version (0b0111)
    - 74-bit randomness
    """
    ts_ms = int(time.time() * 1000)
    ts_bytes = ts_ms.to_bytes(6, "big", signed=False)
    rand_bytes = os.urandom(10)
    raw = bytearray(ts_bytes + rand_bytes)
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def caf_number_prefix(year: int) -> str:
    return f"CAF-{year:04d}-"


def format_caf_number(year: int, sequence: int) -> str:
    """Render e.g. CAF-2025-0001. Sequences past 9999 simply widen."""
    if sequence < 1:
        raise ValueError("CAF sequence starts at 1")
    return f"{caf_number_prefix(year)}{sequence:04d}"


def parse_caf_sequence(caf_number: Optional[str]) -> Optional[int]:
    if not caf_number:
        return None
    match = CAF_NUMBER_RE.match(caf_number.strip())
    if not match:
        return None
    return int(match.group("seq"))
