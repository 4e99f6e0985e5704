from fastapi import Request

from app.assembler import MessageAssembler
from app.coordinator import TurnCoordinator
from app.session import SessionRegistry
from app.streaming import ChatStreamingHandler
from config import Settings

# Components are composed once by the server and kept on app.state


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_assembler(request: Request) -> MessageAssembler:
    return request.app.state.assembler


def get_coordinator(request: Request) -> TurnCoordinator:
    return request.app.state.coordinator


def get_streaming_handler(request: Request) -> ChatStreamingHandler:
    return request.app.state.streaming_handler
