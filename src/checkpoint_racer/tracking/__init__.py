"""Checkpoint crossing detection and lap counting."""

from checkpoint_racer.errors import (
    CatalogInconsistency,
    CollaboratorUnavailable,
    MalformedSample,
    RaceError,
    UnknownEntity,
)
from checkpoint_racer.tracking.catalog import CatalogSnapshot, CheckpointCatalog
from checkpoint_racer.tracking.counter import LapCounter, LapCredit
from checkpoint_racer.tracking.orchestrator import DetectionOrchestrator, LapEvent
from checkpoint_racer.tracking.state_machine import LapStateMachine
from checkpoint_racer.tracking.trajectory import Segment, TrajectoryTracker

__all__ = [
    "CatalogInconsistency",
    "CatalogSnapshot",
    "CheckpointCatalog",
    "CollaboratorUnavailable",
    "DetectionOrchestrator",
    "LapCounter",
    "LapCredit",
    "LapEvent",
    "LapStateMachine",
    "MalformedSample",
    "RaceError",
    "Segment",
    "TrajectoryTracker",
    "UnknownEntity",
]
