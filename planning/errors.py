"""Error taxonomy for pipeline runs.

Data gaps are recoverable lookup misses: the row is dropped or the value
defaults to zero, and the gap is logged. Fatal batch errors abort the
remaining stages of a batch; the operator clears the batch and re-runs it.
"""

import logging
import warnings
from collections import defaultdict
from typing import Optional

logger = logging.getLogger(__name__)


class PlanningError(Exception):
    """Base class for pipeline errors."""


class FatalBatchError(PlanningError):
    """A required sheet is missing or malformed, or storage failed."""

    def __init__(
        self,
        message: str,
        batch_id: Optional[str] = None,
        stage: Optional[str] = None,
        key: Optional[tuple] = None,
    ):
        self.message = message
        self.batch_id = batch_id
        self.stage = stage
        self.key = key
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.batch_id:
            context.append(f"batch={self.batch_id}")
        if self.stage:
            context.append(f"stage={self.stage}")
        if self.key is not None:
            context.append(f"key={self.key}")
        if context:
            return f"{self.message} [{', '.join(context)}]"
        return self.message


class DataGapWarning(UserWarning):
    """A lookup miss that was defaulted or dropped instead of failing."""

    def __init__(
        self,
        message: str,
        batch_id: Optional[str] = None,
        stage: Optional[str] = None,
        key: Optional[tuple] = None,
    ):
        self.message = message
        self.batch_id = batch_id
        self.stage = stage
        self.key = key
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.message} (stage={self.stage}, key={self.key})"


class DataGapReport:
    """Collects data gaps for one batch.

    With ``strict=True`` the first gap is escalated to a FatalBatchError,
    which is how callers turn e.g. missing freight rates into hard errors.
    """

    def __init__(self, batch_id: Optional[str] = None, strict: bool = False):
        self.batch_id = batch_id
        self.strict = strict
        self.gaps: list[DataGapWarning] = []

    def record(self, stage: str, key: tuple, message: str) -> DataGapWarning:
        gap = DataGapWarning(message, batch_id=self.batch_id, stage=stage, key=key)
        self.gaps.append(gap)
        logger.warning("Data gap in %s for %s: %s", stage, key, message)
        warnings.warn(gap, stacklevel=2)
        if self.strict:
            raise FatalBatchError(
                f"Data gap treated as fatal: {message}",
                batch_id=self.batch_id,
                stage=stage,
                key=key,
            ) from gap
        return gap

    def by_stage(self) -> dict[str, list[DataGapWarning]]:
        result: dict[str, list[DataGapWarning]] = defaultdict(list)
        for gap in self.gaps:
            result[gap.stage].append(gap)
        return dict(result)

    def keys(self, stage: str) -> list[tuple]:
        return [gap.key for gap in self.gaps if gap.stage == stage]

    def __len__(self) -> int:
        return len(self.gaps)
