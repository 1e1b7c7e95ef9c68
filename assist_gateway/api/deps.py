# assist_gateway/api/deps.py
from typing import Callable

from fastapi import Depends

from assist_gateway.core.config import AssistantConfig, Settings, get_settings
from assist_gateway.services.audit_service import AuditLogger
from assist_gateway.services.openai_service import OpenAIService

ServiceFactory = Callable[[AssistantConfig], OpenAIService]


def get_openai_service_factory() -> ServiceFactory:
    return OpenAIService


def get_audit_logger(settings: Settings = Depends(get_settings)) -> AuditLogger:
    return AuditLogger.from_settings(settings)
