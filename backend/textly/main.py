"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from textly.api import improve, ops, users_meta
from textly.api.errors import install_error_handlers
from textly.domain.assist.provider import build_text_model
from textly.infra import postgres
from textly.infra.datastore import Datastore
from textly.obs import init as obs_init
from textly.obs import install_middleware
from textly.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	app.state.datastore = Datastore(pool)
	http = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)
	app.state.text_model = build_text_model(http)
	try:
		yield
	finally:
		await http.aclose()
		await postgres.close_pool()


app = FastAPI(title="Textly Chat API", lifespan=lifespan)

install_error_handlers(app)
obs_init(app)
install_middleware(app)

app.include_router(users_meta.router, tags=["profiles"])
app.include_router(improve.router, tags=["assist"])
app.include_router(ops.router)
