from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .bootstrap import build_resolver
from .guard import SessionGuard
from .log_config import setup_logging
from .resolver import CredentialResolver
from .routers import auth
from .session import SessionSigner
from .settings import LdapSettings, get_settings
from .store import UserStore

log = logging.getLogger(__name__)


def create_app(
    settings: LdapSettings | None = None,
    resolver: CredentialResolver | None = None,
    store: UserStore | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    if resolver is None:
        setup_logging(level=settings.log_level)
        resolver = build_resolver(settings, store=store)
    if store is None:
        store = resolver.store

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        resolver.close()
        log.info("Directory connection closed")

    app = FastAPI(title="LDAP Auth", lifespan=lifespan)
    app.state.settings = settings
    app.state.guard = SessionGuard(resolver)
    app.state.signer = SessionSigner(settings.secret_key)
    app.state.store = store
    app.include_router(auth.router)
    return app
