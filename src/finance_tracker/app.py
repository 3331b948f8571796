from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from finance_tracker.api.routes import budgets, filters, tags, transactions
from finance_tracker.core import settings
from finance_tracker.errors import FinanceTrackerError
from finance_tracker.logger import get_logger, setup_logging
from finance_tracker.services.budgets import BudgetService
from finance_tracker.services.store import LedgerStore
from finance_tracker.services.tags import TagService
from finance_tracker.services.transactions import TransactionService

logger = get_logger(__name__)


async def handle_domain_error(request: Request, exc: FinanceTrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(store: LedgerStore | None = None) -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        ledger = store if store is not None else LedgerStore(data_path=settings.resolve_ledger_path())
        if not ledger.data_path:
            logger.warning("LEDGER_FILE not set. Data is kept in memory only.")

        app.state.store = ledger
        app.state.tag_service = TagService(ledger)
        app.state.transaction_service = TransactionService(ledger, page_size=settings.TRANSACTIONS_PAGE_SIZE)
        app.state.budget_service = BudgetService(ledger, pace_tolerance=settings.PACE_TOLERANCE)

        logger.info("Services initialized.")
        yield
        logger.info("Service shutting down.")

    app = FastAPI(title="Finance Tracker", lifespan=lifespan)
    app.add_exception_handler(FinanceTrackerError, handle_domain_error)

    app.include_router(tags.router)
    app.include_router(transactions.router)
    app.include_router(budgets.router)
    app.include_router(filters.router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
