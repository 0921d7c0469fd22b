"""Telemetry ingestion and persistence.

Public API
----------
TelemetrySample - one inbound position update
SampleAck       - per-sample outcome returned to the source
PlayerRecord    - persisted player row
SampleDecoder   - raw message → DecodeResult
RaceStorage     - SQLite persistence
"""

from checkpoint_racer.telemetry.models import PlayerRecord, SampleAck, TelemetrySample
from checkpoint_racer.telemetry.parser import DecodeResult, SampleDecoder
from checkpoint_racer.telemetry.storage import RaceStorage

__all__ = [
    "DecodeResult",
    "PlayerRecord",
    "RaceStorage",
    "SampleAck",
    "SampleDecoder",
    "TelemetrySample",
]
