from fastapi import Request

from app.services.coordinator import Coordinator
from app.services.moderation import ModerationService


def get_coordinator(request: Request) -> Coordinator:
    return request.app.state.coordinator


def get_moderation_service(request: Request) -> ModerationService:
    return request.app.state.moderation
