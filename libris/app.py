#!/usr/bin/env python3

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from libris.routes import api
from libris.configs import OPTIONS, LOG_LEVEL
from libris.core.context import LibraryContext
from libris import __version__ as VERSION

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

def create_app(library: LibraryContext = None) -> FastAPI:
    """Builds the API around `library`, or around a library opened on
    the configured database when none is given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "library", None) is None
        if owned:
            app.state.library = LibraryContext()
        yield
        if owned:
            app.state.library.close()

    app = FastAPI(
        title="Libris API",
        description="Libris: books, readers and loans for a small library",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.library = library

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api.router, prefix="/v1/api")
    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("libris.app:app", **OPTIONS)
