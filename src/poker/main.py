"""
FastAPI application for the planning poker backend.

Endpoints:
    GET /        - Liveness message with connected client count
    GET /health  - Health check with process uptime
    WS  /ws      - Session socket (join-session, vote-submitted, ...)

Startup builds the Coordinator (session store, connection registry, engine,
broadcast gateway, reaper) and starts the reaper. Shutdown stops the reaper
and closes every outbound writer. uvicorn handles SIGTERM by draining
in-flight requests before running the shutdown half of the lifespan.
"""

import logging
import os
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from poker.handler import Coordinator, handle_websocket
from poker.models import to_iso, utc_now

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_started = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    coordinator = Coordinator()
    coordinator.reaper.start()
    app.state.coordinator = coordinator
    logger.info("Planning Poker backend ready (environment: %s)", ENVIRONMENT)
    yield
    logger.info("Shutting down gracefully")
    await coordinator.shutdown()
    logger.info("Process terminated")


app = FastAPI(
    title="Planning Poker",
    description="Real-time planning poker session coordinator",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _connected_clients(request: Request) -> int:
    return request.app.state.coordinator.gateway.connected_count


@app.get("/")
async def root(request: Request):
    return {
        "message": "Planning Poker Backend is running!",
        "timestamp": to_iso(utc_now()),
        "connectedClients": _connected_clients(request),
    }


@app.get("/health")
async def health(request: Request):
    return {
        "status": "healthy",
        "uptime": time.monotonic() - _started,
        "connectedClients": _connected_clients(request),
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await handle_websocket(websocket, websocket.app.state.coordinator)


def run() -> None:
    logger.info("Planning Poker backend running on port %d", PORT)
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
