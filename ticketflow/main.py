from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ticketflow.api.routes import ping, tickets
from ticketflow.core.config import get_settings
from ticketflow.core.logging import configure_logging, init_tracer, shutdown_tracer
from ticketflow.middleware import RBACMiddleware
from ticketflow.services.postgres import PostgresConnectionTester, to_asyncpg_dsn
from ticketflow.tickets import (
    InMemoryTicketRepository,
    SLAPolicyProvider,
    SQLTicketRepository,
    TicketRepository,
    TicketService,
)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.postgres_tester = None

    policy_provider = SLAPolicyProvider.from_settings(settings)
    db_engine = None
    postgres_tester = None
    repository: TicketRepository
    if settings.storage_backend.lower() == "postgres":
        postgres_tester = PostgresConnectionTester(dsn=settings.postgres_dsn)
        db_engine = create_async_engine(to_asyncpg_dsn(settings.postgres_dsn), future=True)
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        repository = SQLTicketRepository(session_factory, engine=db_engine)
        await repository.ensure_schema()
        app.state.postgres_tester = postgres_tester
    else:
        repository = InMemoryTicketRepository()

    app.state.ticket_service = TicketService(repository, policy_provider)
    logger.info(
        "Ticket service ready (storage=%s, policies=%d)",
        settings.storage_backend,
        len(policy_provider.policies()),
    )
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        if postgres_tester is not None:
            await postgres_tester.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RBACMiddleware)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    return app


app = create_app()
