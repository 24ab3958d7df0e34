from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tuitiondesk.api.v1.auth.router import router as auth_router
from tuitiondesk.api.v1.batches.router import router as batches_router
from tuitiondesk.api.v1.payments.router import router as payments_router
from tuitiondesk.api.v1.registration.router import router as registration_router
from tuitiondesk.api.v1.stats.router import router as stats_router
from tuitiondesk.api.v1.students.router import batch_students_router
from tuitiondesk.api.v1.students.router import router as students_router
from tuitiondesk.api.v1.teachers.router import router as teachers_router
from tuitiondesk.core.config import settings
from tuitiondesk.core.logging import configure_logging
from tuitiondesk.db.session import create_tables


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    yield


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="TuitionDesk Backend", lifespan=lifespan)

    # CORS: allow the web client to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth_router)
    app.include_router(teachers_router)
    app.include_router(batches_router)
    app.include_router(batch_students_router)
    app.include_router(students_router)
    app.include_router(registration_router)
    app.include_router(payments_router)
    app.include_router(stats_router)

    return app


app = create_app()
