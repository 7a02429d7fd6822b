"""Shared test fixtures: in-memory Mongo, stub pipeline, mocked AWS clients."""

import os

# Settings are read once at import time, so these must be set first.
os.environ["JOBS_DISPATCH_MODE"] = "inline"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["PIPELINE_BASE_URL"] = ""
os.environ["PIPELINE_WEBHOOK_SECRET"] = "whsec-test"
os.environ["PROJECT_BUCKETS_ENABLED"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["CELERY_BROKER_URL"] = "memory://"

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from syndata.core.aws import AWSClients
from syndata.core.database import Database
from syndata.main import app
from syndata.pipeline.client import set_pipeline_client
from syndata.pipeline.stub import StubPipelineClient

API = "/api/v1"
ADMIN_API_KEY = "test-admin-key"


@pytest.fixture(autouse=True)
def db():
    client = AsyncMongoMockClient()
    Database.client = client
    Database.db = client["syndatagen_test"]
    yield Database.db
    Database.client = None
    Database.db = None


@pytest.fixture(autouse=True)
def pipeline():
    stub = StubPipelineClient()
    set_pipeline_client(stub)
    yield stub
    set_pipeline_client(None)


@pytest.fixture(autouse=True)
def aws():
    clients = AWSClients()
    clients.reset()
    mocks = {name: MagicMock(name=name) for name in ("s3", "iam", "secretsmanager")}
    for name, mock in mocks.items():
        clients.set(name, mock)
    yield mocks
    clients.reset()


@pytest.fixture
def client():
    # No context manager: the lifespan would connect to a real MongoDB.
    return TestClient(app)


@pytest.fixture
def admin_headers():
    return {"X-ADMIN-API-KEY": ADMIN_API_KEY}


@pytest.fixture
def make_user(client):
    """Register a user and return {"id", "email", "headers"}."""
    counter = {"n": 0}

    def _make(email=None, name="Test User", password="correct-horse"):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        r = client.post(f"{API}/auth/register", json={"email": email, "password": password, "name": name})
        assert r.status_code == 200, r.text
        # Bearer headers only; the session cookie would leak into later requests.
        client.cookies.clear()
        body = r.json()
        return {
            "id": body["user"]["id"],
            "email": email,
            "headers": {"Authorization": f"Bearer {body['access_token']}"},
        }

    return _make


@pytest.fixture
def owner(make_user):
    return make_user(email="owner@example.com", name="Project Owner")


@pytest.fixture
def make_project(client, owner):
    def _make(name="Churn model", user=None, **extra):
        user = user or owner
        r = client.post(f"{API}/projects", json={"name": name, **extra}, headers=user["headers"])
        assert r.status_code == 201, r.text
        return r.json()

    return _make


@pytest.fixture
def project(make_project):
    return make_project()


@pytest.fixture
def make_job(client, owner, project):
    def _make(job_type="tabular", job_config=None, user=None, project_id=None):
        user = user or owner
        r = client.post(
            f"{API}/projects/{project_id or project['id']}/jobs",
            json={"job_type": job_type, "job_config": job_config or {"count": 500}},
            headers=user["headers"],
        )
        assert r.status_code == 201, r.text
        return r.json()

    return _make
