import os
os.environ["TESTING"] = "1"
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from labrun import models  # noqa: F401
from labrun import schemas
from labrun.main import app
from labrun.database import Base, get_db

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_labrun.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def step(step_id, *measurements, title=None):
    return schemas.StepDefinition(
        id=step_id,
        title=title or f"Step {step_id}",
        measurements=list(measurements),
    )


def measurement(measurement_id, **kwargs):
    kwargs.setdefault("name", measurement_id)
    return schemas.MeasurementDefinition(id=measurement_id, **kwargs)


def build_execution(steps, sample_names=("Sample 1",), **kwargs):
    """In-memory execution with the given steps and one PENDING sample per name."""

    kwargs.setdefault("study_id", f"study-{uuid.uuid4()}")
    kwargs.setdefault("protocol_id", "protocol-1")
    return schemas.ProtocolExecution(
        steps=list(steps),
        samples=[
            schemas.Sample(name=name, sample_number=number)
            for number, name in enumerate(sample_names, start=1)
        ],
        **kwargs,
    )


def execution_payload(**overrides):
    """JSON body for POST /api/executions with two steps and two samples."""

    payload = {
        "study_id": f"study-{uuid.uuid4()}",
        "protocol_id": "ph-stability",
        "study_name": "Buffer stability",
        "protocol_name": "pH stability check",
        "operator": "alice",
        "steps": [
            {
                "id": "S1",
                "title": "Measure pH",
                "measurements": [
                    {
                        "id": "ph",
                        "name": "pH",
                        "data_type": "numeric",
                        "required": True,
                        "expected_value": 7.0,
                        "tolerance": 0.2,
                    }
                ],
            },
            {"id": "S2", "title": "Visual inspection"},
        ],
        "test_conditions": [
            {"name": "Incubation", "target_value": "37", "unit": "C", "required": True}
        ],
        "samples": [{"name": "Vial A"}, {"name": "Vial B"}],
    }
    payload.update(overrides)
    return payload
