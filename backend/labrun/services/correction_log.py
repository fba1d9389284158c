"""Append-only audit trail of rollbacks and value edits."""

from __future__ import annotations

from uuid import UUID

from .. import schemas
from .errors import MissingReason, SampleNotFound

# purpose: structured correction history kept per sample inside the execution aggregate
# inputs: execution aggregate, CorrectionEntry payloads
# outputs: ordered CorrectionEntry lists; entries are frozen and never removed
# status: production


class CorrectionLog:
    """Audit trail view over the samples of one execution."""

    def __init__(self, execution: schemas.ProtocolExecution) -> None:
        self._execution = execution

    def _sample(self, sample_id: UUID) -> schemas.Sample:
        sample = self._execution.sample(sample_id)
        if sample is None:
            raise SampleNotFound(sample_id)
        return sample

    def append(self, entry: schemas.CorrectionEntry) -> schemas.CorrectionEntry:
        if entry.kind == "ROLLBACK" and not (entry.reason or "").strip():
            raise MissingReason("rollback")
        sample = self._sample(entry.sample_id)
        sample.corrections.append(entry)
        return entry

    def entries_for_step(self, sample_id: UUID, step_id: str) -> list[schemas.CorrectionEntry]:
        return [entry for entry in self._sample(sample_id).corrections if entry.step_id == step_id]

    def entries_for_sample(self, sample_id: UUID) -> list[schemas.CorrectionEntry]:
        return list(self._sample(sample_id).corrections)

    def __len__(self) -> int:
        return sum(len(sample.corrections) for sample in self._execution.samples)
