from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

__version__ = "0.1.0"

from memocloze.config import settings  # noqa: E402
from memocloze.db import init_all_databases  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    from memocloze.services.backends import build_backends
    from memocloze.services.sync import init_review_sync

    await init_all_databases(settings.data_dir)
    init_review_sync(build_backends(settings.primary_store_enabled))
    yield


def create_app() -> FastAPI:
    application = FastAPI(
        title="memocloze Backend", version=__version__, lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from memocloze.routers import documents, health, review

    application.include_router(health.router)
    application.include_router(
        documents.router, prefix="/documents", tags=["documents"]
    )
    application.include_router(
        review.router, prefix="/review", tags=["review"]
    )

    return application


app = create_app()
