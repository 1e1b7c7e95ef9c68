"""Shared test fixtures and configuration."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from assist_gateway.api.deps import get_audit_logger, get_openai_service_factory
from assist_gateway.core.config import Settings, get_settings
from assist_gateway.main import app as fastapi_app
from assist_gateway.services.audit_service import AuditLogger
from tests.fakes import FakeAssistantService

ALLOWED = "https://chat.example.edu, https://staff.example.edu"


def make_settings(**overrides) -> Settings:
    values = dict(
        OPENAI_API_KEY="sk-test",
        ASSISTANT_ID="asst_test",
        ALLOW_ORIGIN=ALLOWED,
        POLL_BUDGET_MS=0,
        EMAIL_DOMAIN="edisonschools.edu.vn",
        LOG_WEBHOOK_URL=None,
        LOG_TOKEN=None,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_service() -> FakeAssistantService:
    return FakeAssistantService()


@pytest.fixture
def app(settings, fake_service):
    """FastAPI app wired to the in-memory assistant service."""

    def service_factory(config):
        fake_service.config = config
        return fake_service

    fastapi_app.dependency_overrides[get_settings] = lambda: settings
    fastapi_app.dependency_overrides[get_openai_service_factory] = lambda: service_factory
    fastapi_app.dependency_overrides[get_audit_logger] = lambda: AuditLogger(None, None)

    yield fastapi_app

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
