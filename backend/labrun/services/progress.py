"""Derived progress figures for executions and samples."""

from __future__ import annotations

from typing import Sequence

from .. import schemas

# purpose: single source of truth for current step and completion percentages
# inputs: execution aggregate or sample plus step definitions
# outputs: percentages in [0, 100], step indices, aggregate statistics
# status: production


def current_step_index(
    sample: schemas.Sample,
    steps: Sequence[schemas.StepDefinition],
) -> int:
    """Index of the first step the sample has not completed, ``len(steps)`` when done."""

    for index, step in enumerate(steps):
        if step.id not in sample.completed_steps:
            return index
    return len(steps)


def sample_progress(sample: schemas.Sample, total_steps: int) -> float:
    if total_steps == 0:
        return 100.0
    return min(len(sample.completed_steps) / total_steps * 100, 100.0)


def overall_progress(execution: schemas.ProtocolExecution) -> float:
    if not execution.samples:
        return 0.0
    total_steps = len(execution.steps)
    if total_steps == 0:
        return 100.0
    completed = sum(len(sample.completed_steps) for sample in execution.samples)
    return completed / (len(execution.samples) * total_steps) * 100


def determine_overall_result(samples: Sequence[schemas.Sample]) -> schemas.ResultStatus:
    completed = [sample for sample in samples if sample.status == "COMPLETED"]
    if not completed:
        return "PENDING"
    passed = [sample for sample in completed if sample.quality == "pass"]
    failed = [sample for sample in completed if sample.quality == "fail"]
    if not failed:
        return "PASSED"
    if not passed:
        return "FAILED"
    return "PARTIAL"


def execution_statistics(execution: schemas.ProtocolExecution) -> schemas.ExecutionStatistics:
    """Summarize sample outcomes alongside step-level progress."""

    samples = execution.samples
    completed = [sample for sample in samples if sample.status == "COMPLETED"]
    skipped = [sample for sample in samples if sample.status == "SKIPPED"]
    finished = len(completed) + len(skipped)
    completion = finished / len(samples) * 100 if samples else 0.0
    return schemas.ExecutionStatistics(
        total_samples=len(samples),
        completed_samples=len(completed),
        passed_samples=sum(1 for sample in completed if sample.quality == "pass"),
        failed_samples=sum(1 for sample in completed if sample.quality == "fail")
        + sum(1 for sample in samples if sample.status == "FAILED"),
        warning_samples=sum(1 for sample in completed if sample.quality == "warning"),
        skipped_samples=len(skipped),
        sample_completion_percentage=round(completion, 2),
        overall_progress=round(overall_progress(execution), 2),
        overall_result=determine_overall_result(samples),
    )
