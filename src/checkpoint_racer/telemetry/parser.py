"""SampleDecoder — raw client message → validated :class:`TelemetrySample`."""

from __future__ import annotations

import json
from dataclasses import dataclass

from pydantic import ValidationError

from checkpoint_racer.errors import MalformedSample
from checkpoint_racer.telemetry.models import TelemetrySample


@dataclass
class DecodeResult:
    """Tagged decode outcome: exactly one of *sample* / *error* is set.

    ``player_id`` is echoed on failure when the message carried a usable one.
    """

    sample: TelemetrySample | None = None
    error: str | None = None
    player_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.sample is not None


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "message"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def _guess_player_id(raw: str | bytes | dict) -> str | None:
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
            return None
    if isinstance(data, dict):
        pid = data.get("player_id")
        if isinstance(pid, str) and pid:
            return pid
    return None


class SampleDecoder:
    """Decodes JSON text, bytes or an already-parsed dict.

    Unknown fields, missing fields, wrong types and non-finite numbers are all
    rejected; nothing is silently defaulted.
    """

    def parse(self, raw: str | bytes | dict) -> TelemetrySample:
        """Return the validated sample.

        Raises
        ------
        MalformedSample
            If *raw* is not valid JSON or does not match the sample schema.
        """
        try:
            if isinstance(raw, dict):
                return TelemetrySample.model_validate(raw)
            return TelemetrySample.model_validate_json(raw)
        except ValidationError as exc:
            raise MalformedSample(_describe(exc)) from exc

    def decode(self, raw: str | bytes | dict) -> DecodeResult:
        """Like :meth:`parse` but returns a :class:`DecodeResult` instead of raising."""
        try:
            sample = self.parse(raw)
        except MalformedSample as exc:
            return DecodeResult(error=str(exc), player_id=_guess_player_id(raw))
        return DecodeResult(sample=sample, player_id=sample.player_id)
