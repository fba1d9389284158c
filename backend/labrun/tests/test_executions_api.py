import uuid

import pytest
from fastapi import HTTPException

from labrun import schemas
from labrun.routes import executions as routes
from .conftest import execution_payload


def _create(client, **overrides):
    resp = client.post("/api/executions", json=execution_payload(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


def _started(client, **overrides):
    execution = _create(client, **overrides)
    resp = client.post(f"/api/executions/{execution['id']}/start")
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_create_execution_projects_samples(client):
    data = _create(client)

    assert data["status"] == "NOT_STARTED"
    assert data["version"] == 1
    assert data["progress"] == 0.0
    assert [s["name"] for s in data["samples"]] == ["Vial A", "Vial B"]
    assert [s["sample_number"] for s in data["samples"]] == [1, 2]
    assert all(s["current_step_index"] == 0 for s in data["samples"])


def test_duplicate_step_ids_are_rejected(client):
    payload = execution_payload(steps=[{"id": "S1", "title": "a"}, {"id": "S1", "title": "b"}])

    resp = client.post("/api/executions", json=payload)

    assert resp.status_code == 422


def test_start_twice_keeps_version(client):
    execution = _create(client)
    url = f"/api/executions/{execution['id']}/start"

    first = client.post(url).json()
    second = client.post(url, params={"expected_version": 1}).json()

    assert first["status"] == second["status"] == "IN_PROGRESS"
    assert first["version"] == second["version"] == 2


def test_measurement_step_flow(client):
    execution = _started(client)
    base = f"/api/executions/{execution['id']}"
    sample_id = execution["samples"][0]["id"]

    resp = client.post(f"{base}/samples/{sample_id}/steps/S1/complete")
    assert resp.status_code == 422
    assert resp.json()["detail"]["missing"] == ["ph"]

    resp = client.post(
        f"{base}/samples/{sample_id}/measurements",
        json={"step_id": "S1", "measurement_id": "ph", "value": 7.6, "operator": "alice"},
    )
    assert resp.status_code == 200, resp.text
    sample = resp.json()
    assert sample["status"] == "IN_PROGRESS"
    assert sample["measurements"][0]["within_tolerance"] is False

    sample = client.post(f"{base}/samples/{sample_id}/steps/S1/complete").json()
    assert sample["current_step_index"] == 1
    assert sample["completed_steps"] == ["S1"]

    sample = client.post(f"{base}/samples/{sample_id}/steps/S2/complete").json()
    assert sample["current_step_index"] == 2
    assert sample["progress"] == 100.0

    stats = client.get(f"{base}/progress").json()
    assert stats["overall_progress"] == 50.0


def test_rollback_and_corrections(client):
    execution = _started(client)
    base = f"/api/executions/{execution['id']}"
    sample_id = execution["samples"][0]["id"]
    client.post(
        f"{base}/samples/{sample_id}/measurements",
        json={"step_id": "S1", "measurement_id": "ph", "value": 7.0, "operator": "alice"},
    )
    client.post(f"{base}/samples/{sample_id}/steps/S1/complete")

    resp = client.post(
        f"{base}/samples/{sample_id}/steps/S1/rollback",
        json={"reason": "", "operator": "alice"},
    )
    assert resp.status_code == 422

    resp = client.post(
        f"{base}/samples/{sample_id}/steps/S1/rollback",
        json={"reason": "electrode not calibrated", "operator": "alice"},
    )
    assert resp.status_code == 200, resp.text
    sample = resp.json()
    assert sample["current_step_index"] == 0
    assert len(sample["measurements"]) == 1

    resp = client.post(
        f"{base}/samples/{sample_id}/steps/S2/rollback",
        json={"reason": "n/a"},
    )
    assert resp.status_code == 409

    corrections = client.get(
        f"{base}/samples/{sample_id}/corrections", params={"step_id": "S1"}
    ).json()
    assert [c["kind"] for c in corrections] == ["ROLLBACK"]
    assert corrections[0]["reason"] == "electrode not calibrated"


def test_pause_blocks_sample_commands(client):
    execution = _create(client)
    base = f"/api/executions/{execution['id']}"
    sample_id = execution["samples"][0]["id"]

    resp = client.post(f"{base}/pause", json={"notes": "early"})
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "invalid_transition"

    client.post(f"{base}/start")
    assert client.post(f"{base}/pause", json={"notes": "lunch"}).json()["status"] == "PAUSED"

    resp = client.post(f"{base}/samples/{sample_id}/steps/S2/complete")
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "execution_not_active"

    client.post(f"{base}/resume")
    resp = client.post(f"{base}/samples/{sample_id}/steps/S2/complete")
    assert resp.status_code == 200


def test_stale_expected_version_conflicts(client):
    execution = _started(client)
    base = f"/api/executions/{execution['id']}"

    resp = client.post(f"{base}/pause", params={"expected_version": 1})

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "concurrent_modification"
    assert client.get(base).json()["status"] == "IN_PROGRESS"


def test_redefine_steps_before_start_only(client):
    execution = _create(client)
    base = f"/api/executions/{execution['id']}"

    resp = client.put(f"{base}/steps", json={"steps": [{"id": "only", "title": "Only"}]})
    assert resp.status_code == 200
    assert [s["id"] for s in resp.json()["steps"]] == ["only"]

    client.post(f"{base}/start")
    resp = client.put(f"{base}/steps", json={"steps": [{"id": "late", "title": "Late"}]})
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "step_definitions_locked"


def test_test_conditions_and_environment(client):
    execution = _create(client)
    base = f"/api/executions/{execution['id']}"

    resp = client.post(f"{base}/test-conditions", json={"name": "Incubation", "actual_value": "37.1"})
    assert resp.status_code == 200
    assert resp.json()["test_conditions"][0]["is_set"] is True

    resp = client.post(f"{base}/test-conditions", json={"name": "Unknown", "actual_value": "1"})
    assert resp.status_code == 404

    resp = client.patch(f"{base}/environment", json={"temperature": 22.0, "humidity": 45.0})
    assert resp.status_code == 200
    environment = resp.json()["environment"]
    assert environment["temperature"] == 22.0
    assert environment["humidity"] == 45.0


def test_sample_completion_skip_and_execution_complete(client):
    execution = _started(client)
    base = f"/api/executions/{execution['id']}"
    vial_a, vial_b = (s["id"] for s in execution["samples"])

    resp = client.post(f"{base}/samples/{vial_a}/complete", json={"quality": "pass"})
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "sample_not_ready"

    resp = client.post(
        f"{base}/samples/{vial_a}/complete",
        json={"quality": "warning", "override_reason": "electrode broke"},
    )
    assert resp.status_code == 200
    assert resp.json()["completion_override"] == "electrode broke"

    resp = client.post(f"{base}/samples/{vial_b}/skip", json={"reason": "contaminated"})
    assert resp.json()["status"] == "SKIPPED"

    resp = client.post(f"{base}/complete", json={"summary": "ok"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "COMPLETED"
    assert data["overall_result"] == "PASSED"

    resp = client.post(f"{base}/cancel")
    assert resp.status_code == 409


def test_fail_execution_and_sample(client):
    execution = _started(client)
    base = f"/api/executions/{execution['id']}"
    sample_id = execution["samples"][0]["id"]

    resp = client.post(f"{base}/samples/{sample_id}/fail", json={"reason": "dropped"})
    assert resp.json()["status"] == "FAILED"

    resp = client.post(f"{base}/fail", json={"reason": "incubator fault"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "FAILED"


def test_not_found_routes(client):
    missing = uuid.uuid4()
    assert client.get(f"/api/executions/{missing}").status_code == 404
    assert client.post(f"/api/executions/{missing}/start").status_code == 404

    execution = _started(client)
    resp = client.post(f"/api/executions/{execution['id']}/samples/{missing}/steps/S1/complete")
    assert resp.status_code == 404


def test_timeline_and_listing(client):
    execution = _started(client)
    base = f"/api/executions/{execution['id']}"
    client.post(f"{base}/pause")

    events = client.get(f"{base}/timeline").json()
    assert [e["event_type"] for e in events] == [
        "execution.created",
        "execution.started",
        "execution.paused",
    ]
    assert [e["version"] for e in events] == [1, 2, 3]

    listing = client.get("/api/executions", params={"study_id": execution["study_id"]}).json()
    assert [item["id"] for item in listing] == [execution["id"]]
    assert listing[0]["status"] == "PAUSED"


def test_metrics_endpoint(client):
    client.get("/api/executions", params={"study_id": "nothing"})

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "request_count" in resp.text


def test_missing_sample_view_returns_typed_detail(db_session):
    execution = schemas.ProtocolExecution(study_id="study", protocol_id="protocol")
    missing = uuid.uuid4()

    with pytest.raises(HTTPException) as exc_info:
        routes._sample_view(db_session, execution, missing)

    assert exc_info.value.status_code == 404
    assert exc_info.value.detail == {
        "code": "not_found",
        "message": f"sample {missing} not found",
        "sample_id": str(missing),
    }
