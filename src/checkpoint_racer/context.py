"""RaceContext — the explicit bundle of collaborators a deployment runs with."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from checkpoint_racer.config import RaceConfig
from checkpoint_racer.telemetry.storage import RaceStorage
from checkpoint_racer.tracking.catalog import CheckpointCatalog
from checkpoint_racer.tracking.counter import LapCounter
from checkpoint_racer.tracking.orchestrator import DetectionOrchestrator

_logger = logging.getLogger(__name__)


@dataclass
class RaceContext:
    """Storage, catalog and orchestrator built from one :class:`RaceConfig`."""

    config: RaceConfig
    storage: RaceStorage
    catalog: CheckpointCatalog
    counter: LapCounter
    orchestrator: DetectionOrchestrator

    @classmethod
    def open(cls, config: RaceConfig) -> RaceContext:
        """Open storage at ``config.db_path`` and load the checkpoint catalog."""
        storage = RaceStorage(config.db_path)
        catalog = CheckpointCatalog()
        catalog.reload(storage)
        counter = LapCounter(storage, scope=config.lap_scope, lap_cap=config.lap_cap)
        orchestrator = DetectionOrchestrator(
            storage, catalog, counter, epsilon=config.epsilon
        )
        _logger.info(
            "Race context opened: db=%s scope=%s cap=%s checkpoints=%d",
            config.db_path,
            config.lap_scope,
            config.lap_cap,
            len(catalog.snapshot()),
        )
        return cls(config, storage, catalog, counter, orchestrator)

    def close(self) -> None:
        self.storage.close()
