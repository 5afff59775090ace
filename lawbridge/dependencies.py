"""
Shared FastAPI dependencies for routers.

The live-channel collaborators live on ``app.state`` (created in
lawbridge.api) and are handed to handlers through these functions.
"""

from fastapi import Request

from .realtime.outbox import EventOutbox
from .realtime.registry import ConnectionRegistry


def get_outbox(request: Request) -> EventOutbox:
    return request.app.state.outbox


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry
