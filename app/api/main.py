import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import routes_jobs
from app.api.deps import get_dispatcher
from app.core.config import get_settings
from app.core.logging import setup_logging
from app.db.session import init_db
from app.workers.dispatch import InlineWorkflowDispatcher

settings = get_settings()
setup_logging(logging.INFO)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    dispatcher = get_dispatcher()
    if isinstance(dispatcher, InlineWorkflowDispatcher):
        dispatcher.resume_all()
    yield
    if isinstance(dispatcher, InlineWorkflowDispatcher):
        await dispatcher.shutdown()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/healthz")
def healthz():
    return {"status": "ok", "service": settings.app_name}


app.include_router(routes_jobs.router)
