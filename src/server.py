import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import logfire
import uvicorn
from fastapi import FastAPI

from api.app import create_app
from app.assembler import MessageAssembler
from app.coordinator import TurnCoordinator
from app.correlation import ToolCorrelationTable
from app.session import SessionRegistry
from app.streaming import ChatStreamingHandler
from config import Settings
from engine import BaseEngine, EngineFactory
from stream.decoder import EventDecoder


class RelayServer:
    def __init__(
        self,
        logger: logging.Logger,
        settings: Settings,
        engine: Optional[BaseEngine] = None,
    ) -> None:
        self.logger = logger
        self.settings = settings

        self.host = settings.host
        self.port = settings.port

        self.engine = engine or EngineFactory.create_engine(
            settings.engine_type,
            settings.get_engine_config(),
            logger=self.logger,
        )

        # Initialize session management
        self.registry = SessionRegistry(logger=self.logger)
        self.correlation = ToolCorrelationTable(
            completed_history=settings.completed_tool_history, logger=self.logger
        )
        self.assembler = MessageAssembler(self.registry, self.correlation, logger=self.logger)

        self.coordinator = TurnCoordinator(
            engine=self.engine,
            registry=self.registry,
            correlation=self.correlation,
            assembler=self.assembler,
            decoder=EventDecoder(logger=self.logger),
            allowed_tools=settings.allowed_tools,
            trigger_commands=settings.trigger_commands,
            task_folders=settings.task_folders,
            logger=self.logger,
        )
        self.streaming_handler = ChatStreamingHandler(self.coordinator, logger=self.logger)

        self.app = create_app(
            settings,
            registry=self.registry,
            assembler=self.assembler,
            coordinator=self.coordinator,
            streaming_handler=self.streaming_handler,
            lifespan=self._lifespan,
        )

        if settings.logfire_enabled:
            logfire.instrument_fastapi(self.app)

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        self.logger.info(
            f"Relay started with PID {os.getpid()} "
            f"(engine {self.settings.engine_type}, PA root {self.settings.projects_root})"
        )
        try:
            yield
        finally:
            await self.shutdown()

    async def listen(self):
        """Start the server and listen for connections."""
        self.logger.info("Starting PA relay server")

        config = uvicorn.Config(
            app=self.app,
            host=self.host,
            port=self.port,
            log_level="info" if self.settings.debug else "warning",
        )
        server = uvicorn.Server(config)

        try:
            self.logger.info(f"PA relay running on http://{self.host}:{self.port}")
            await server.serve()
        except KeyboardInterrupt:
            self.logger.info("Received shutdown signal")

    async def shutdown(self):
        """Cancel in-flight turns and release the engine."""
        self.logger.info("Shutting down PA relay...")
        try:
            active = self.coordinator.active_turns()
            if active:
                self.logger.info(f"Cancelling {len(active)} in-flight turns...")
                for session_id in active:
                    self.coordinator.cancel_turn(session_id)

            await self.engine.aclose()
            self.logger.info("PA relay shutdown completed")
        except Exception as e:
            self.logger.error(f"Shutdown error: {e}")
