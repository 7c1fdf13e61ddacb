from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional, Tuple

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatline.api import notifications, ops
from chatline.api.errors import install_error_handlers
from chatline.domain.chat.repo import InMemoryChatStore
from chatline.domain.identity.users import InMemoryUserDirectory
from chatline.domain.notifications.repo import InMemoryNotificationStore
from chatline.domain.realtime.container import RealtimeContainer, build_container
from chatline.domain.realtime.sockets import RealtimeNamespace, set_namespace
from chatline.infra import postgres
from chatline.obs import init as obs_init
from chatline.settings import settings

logger = logging.getLogger(__name__)


def build_default_container() -> RealtimeContainer:
	if settings.store_backend == "memory":
		logger.warning("using in-memory stores; chats and notifications are not persisted")
		return build_container(
			users=InMemoryUserDirectory(),
			chats=InMemoryChatStore(),
			notifications=InMemoryNotificationStore(),
		)
	return build_container()


def _allowed_origins() -> list[str]:
	allow_origins = list(settings.cors_allow_origins)
	if not allow_origins:
		allow_origins = ["http://localhost:3000"] if settings.is_dev() else []
	# Starlette disallows wildcard '*' with allow_credentials=True
	if "*" in allow_origins:
		allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []
	return allow_origins


@asynccontextmanager
async def lifespan(app: FastAPI):
	container: RealtimeContainer = app.state.realtime
	uses_postgres = settings.store_backend != "memory"
	if uses_postgres:
		await postgres.init_pool()
		await container.ensure_schema()
	try:
		yield
	finally:
		container.reset()
		if uses_postgres:
			await postgres.close_pool()


def create_app(container: Optional[RealtimeContainer] = None) -> FastAPI:
	app = FastAPI(title="Chatline Realtime", lifespan=lifespan)
	app.state.realtime = container or build_default_container()
	install_error_handlers(app)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=_allowed_origins(),
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	obs_init(app)
	app.include_router(ops.router)
	app.include_router(notifications.router)
	return app


def create_socket_server(container: RealtimeContainer) -> Tuple[socketio.AsyncServer, RealtimeNamespace]:
	# Handlers run inline so one connection's events are processed in arrival order
	sio = socketio.AsyncServer(
		async_mode="asgi",
		async_handlers=False,
		cors_allowed_origins=_allowed_origins(),
	)
	namespace = RealtimeNamespace(container)
	sio.register_namespace(namespace)
	return sio, namespace


app = create_app()
sio, realtime_namespace = create_socket_server(app.state.realtime)
set_namespace(realtime_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=settings.socketio_path)


def run() -> None:
	import uvicorn

	uvicorn.run("chatline.main:socket_app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
	run()
