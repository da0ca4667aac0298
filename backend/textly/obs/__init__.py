"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from textly.obs import logging as obs_logging
from textly.obs import middleware
from textly.settings import settings

_initialised = False


def init(app: FastAPI) -> None:
	global _initialised
	if _initialised:
		return
	if settings.obs_enabled:
		obs_logging.configure_logging()
	_initialised = True


def install_middleware(app: FastAPI) -> None:
	middleware.install(app, enabled=settings.obs_enabled)


__all__ = ["init", "install_middleware"]
