"""Per-sample error kinds.  All are recovered by the orchestrator."""

from __future__ import annotations


class RaceError(Exception):
    """Base class for detection errors."""


class MalformedSample(RaceError):
    """A telemetry message is missing a required field or has an invalid one."""


class UnknownEntity(RaceError):
    """The player is not registered or has no team; lap credit is skipped."""


class CollaboratorUnavailable(RaceError):
    """A storage call failed; the rest of the sample is abandoned."""


class CatalogInconsistency(RaceError):
    """A checkpoint id is not present in the current catalog snapshot."""
