from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.api.errors import register_exception_handlers
from app.api.routes import ping, tickets, users
from app.core.config import get_settings
from app.core.logging import configure_logging, init_tracer, shutdown_tracer
from app.tickets.repository import TicketRepository
from app.tickets.service import TicketService


def to_asyncpg_dsn(dsn: str) -> str:
    """Ensure a PostgreSQL DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    engine = create_async_engine(to_asyncpg_dsn(settings.database_url), echo=settings.database_echo)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    repository = TicketRepository(session_factory, engine=engine)
    service = TicketService(repository)
    if settings.create_schema_on_startup:
        await service.ensure_schema()

    app.state.db_engine = engine
    app.state.ticket_service = service
    logger.info("%s started (%s)", settings.app_name, settings.environment)
    try:
        yield
    finally:
        app.state.ticket_service = None
        await engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(users.router)
    return app


app = create_app()
