"""Record persistence between pipeline stages."""

import copy
import logging
from dataclasses import asdict
from typing import Iterable, Protocol

import pandas as pd

from .config import DEFAULT_WRITE_CHUNK_SIZE

logger = logging.getLogger(__name__)

STAGES = ["demand", "supply", "distribution", "balance", "balance_totals"]


class RecordStore(Protocol):
    def replace(self, batch_id: str, stage: str, records: Iterable, chunk_size: int = ...) -> int:
        ...

    def read(self, batch_id: str, stage: str) -> list:
        ...

    def clear_batch(self, batch_id: str) -> None:
        ...


class InMemoryRecordStore:
    """
    Record sets keyed by (batch_id, stage).

    ``replace`` deletes the stage's rows for the batch and writes the new rows
    in chunks. Reads return copies, so a stage never shares objects with the
    stage that wrote them.
    """

    def __init__(self):
        self._records: dict[tuple[str, str], list] = {}

    def _check_stage(self, stage: str) -> None:
        if stage not in STAGES:
            raise ValueError(f"Unknown stage '{stage}', expected one of {STAGES}")

    def write_chunk(self, batch_id: str, stage: str, chunk: list) -> None:
        self._records.setdefault((batch_id, stage), []).extend(copy.deepcopy(chunk))

    def replace(
        self,
        batch_id: str,
        stage: str,
        records: Iterable,
        chunk_size: int = DEFAULT_WRITE_CHUNK_SIZE,
    ) -> int:
        """Delete then write the batch's rows for one stage. Returns rows written."""
        self._check_stage(stage)
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

        records = list(records)
        self._records[(batch_id, stage)] = []
        for start in range(0, len(records), chunk_size):
            chunk = records[start:start + chunk_size]
            self.write_chunk(batch_id, stage, chunk)
            logger.debug(
                "Wrote %s rows %d-%d of %d",
                stage, start + 1, start + len(chunk), len(records),
            )

        logger.info("Stored %d %s records for batch %s", len(records), stage, batch_id)
        return len(records)

    def read(self, batch_id: str, stage: str) -> list:
        self._check_stage(stage)
        return copy.deepcopy(self._records.get((batch_id, stage), []))

    def frame(self, batch_id: str, stage: str) -> pd.DataFrame:
        """Stage records as a DataFrame, one column per record field."""
        records = self.read(batch_id, stage)
        return pd.DataFrame([asdict(r) for r in records])

    def clear_batch(self, batch_id: str) -> None:
        for key in [k for k in self._records if k[0] == batch_id]:
            del self._records[key]
        logger.info("Cleared batch %s", batch_id)

    def batches(self) -> list[str]:
        return sorted({batch_id for batch_id, _ in self._records})

    def stats(self, batch_id: str) -> dict[str, int]:
        """Record count per stage for one batch."""
        return {stage: len(self._records.get((batch_id, stage), [])) for stage in STAGES}
