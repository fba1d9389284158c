from labrun.services import progress
from .conftest import build_execution, step


def test_current_step_index_is_first_gap_even_out_of_order():
    execution = build_execution([step("S1"), step("S2"), step("S3"), step("S4")])
    sample = execution.samples[0]

    sample.completed_steps.update({"S2", "S4"})
    assert progress.current_step_index(sample, execution.steps) == 0

    sample.completed_steps.add("S1")
    assert progress.current_step_index(sample, execution.steps) == 2

    sample.completed_steps.add("S3")
    assert progress.current_step_index(sample, execution.steps) == len(execution.steps)


def test_overall_progress_counts_completed_steps_across_samples():
    execution = build_execution(
        [step("S1"), step("S2"), step("S3")],
        sample_names=("A", "B"),
    )
    execution.samples[0].completed_steps.add("S1")
    execution.samples[1].completed_steps.update({"S1", "S2"})

    assert progress.overall_progress(execution) == 50.0


def test_progress_edge_cases():
    no_samples = build_execution([step("S1")], sample_names=())
    assert progress.overall_progress(no_samples) == 0.0

    no_steps = build_execution([])
    assert progress.overall_progress(no_steps) == 100.0
    assert progress.sample_progress(no_steps.samples[0], 0) == 100.0


def test_determine_overall_result():
    execution = build_execution([], sample_names=("A", "B", "C"))
    a, b, c = execution.samples
    assert progress.determine_overall_result(execution.samples) == "PENDING"

    a.status, a.quality = "COMPLETED", "pass"
    b.status, b.quality = "COMPLETED", "warning"
    assert progress.determine_overall_result(execution.samples) == "PASSED"

    c.status, c.quality = "COMPLETED", "fail"
    assert progress.determine_overall_result(execution.samples) == "PARTIAL"

    a.quality = "fail"
    b.quality = "fail"
    assert progress.determine_overall_result(execution.samples) == "FAILED"


def test_execution_statistics():
    execution = build_execution(
        [step("S1"), step("S2")],
        sample_names=("A", "B", "C", "D"),
    )
    a, b, c, d = execution.samples
    a.status, a.quality = "COMPLETED", "pass"
    a.completed_steps.update({"S1", "S2"})
    b.status = "SKIPPED"
    c.status = "FAILED"
    d.completed_steps.add("S1")

    stats = progress.execution_statistics(execution)

    assert stats.total_samples == 4
    assert stats.completed_samples == 1
    assert stats.passed_samples == 1
    assert stats.failed_samples == 1
    assert stats.skipped_samples == 1
    assert stats.sample_completion_percentage == 50.0
    assert stats.overall_progress == 37.5
    assert stats.overall_result == "PASSED"
