"""FastAPI application factory that owns a TokenAuth instance."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from authtokens.core.settings import AuthSettings
from authtokens.tokens.client import TokenAuth


def create_app(
    settings: AuthSettings | None = None, token_auth: TokenAuth | None = None
) -> FastAPI:
    """Build an application whose state carries the settings and ``TokenAuth``."""
    settings = settings or AuthSettings()
    token_auth = token_auth or TokenAuth.from_settings(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await token_auth.aclose()

    app = FastAPI(title="authtokens", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.token_auth = token_auth
    return app
