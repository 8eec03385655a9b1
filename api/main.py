from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import ServiceContainer, build_services
from api.errors import register_exception_handlers
from api.routers import chat, documents, health, session
from doc_chat.logger import GLOBAL_LOGGER as log


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Pass `services` to run against pre-built store handles; otherwise they
    are built from config.yaml when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Application startup initiated")
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services()
        await app.state.services.database.init_db()
        yield
        await app.state.services.database.dispose()
        log.info("Application shutdown")

    app = FastAPI(title="PDF Document Chat Backend", version="1.0", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Router Registration
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(documents.router, tags=["documents"])
    app.include_router(session.router, tags=["session"])
    app.include_router(chat.router, tags=["chat"])

    @app.get("/")
    async def root():
        return {"message": "Backend is running"}

    return app


app = create_app()
