import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .db import init_db
from .errors import InputError, LedgerError, NotFoundError, StoreError
from .logging_config import setup_logging
from .logic import build_intent
from .normalize import normalize_rows
from .repo import (
    delete_transaction,
    get_transaction,
    list_transactions,
    record_transaction,
)
from .settings import Settings, get_settings


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        init_db(settings)
        yield

    app = FastAPI(title="Koperasi Ledger", lifespan=lifespan)
    app.state.settings = settings

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error("Server error", exc_info=exc)
        return JSONResponse(
            status_code=500, content={"error": "An unexpected error occurred"}
        )

    @app.get("/transactions")
    def get_transactions(anggota_id: str | None = None):
        try:
            rows = list_transactions(
                settings.db_path,
                limit=settings.list_limit,
                anggota_id=anggota_id,
                timeout=settings.db_timeout,
            )
        except sqlite3.Error as exc:
            logger.error("Error fetching transactions", exc_info=exc)
            return JSONResponse(status_code=500, content={"error": str(exc)})
        transactions = normalize_rows(rows)
        logger.info("Fetched %d transactions", len(transactions))
        return transactions

    @app.post("/transactions")
    def create_transaction(
        payload: dict[str, Any] = Body(...),
        idempotency_key: str | None = Header(default=None),
    ):
        intent = build_intent(payload)
        try:
            outcome = record_transaction(
                settings.db_path,
                intent,
                idempotency_key=idempotency_key,
                timeout=settings.db_timeout,
            )
        except sqlite3.Error as exc:
            logger.error(
                "Error creating transaction",
                exc_info=exc,
                extra={"anggota_id": intent.anggota_id},
            )
            raise StoreError.from_sqlite("Failed to create transaction", exc) from exc

        if not outcome.success:
            logger.warning(
                "Transaction rejected: %s",
                outcome.error,
                extra={"anggota_id": intent.anggota_id},
            )
            raise InputError(outcome.error)

        logger.info(
            "Transaction recorded%s",
            " (replayed)" if outcome.replayed else "",
            extra={
                "transaction_id": outcome.transaction_id,
                "anggota_id": intent.anggota_id,
            },
        )
        return {
            "success": True,
            "message": "Transaction created successfully",
            "data": {"id": outcome.transaction_id},
        }

    @app.delete("/transactions")
    def remove_transaction(id: str | None = None):
        if not id:
            raise InputError("Transaction ID is required")

        try:
            existing = get_transaction(settings.db_path, id, timeout=settings.db_timeout)
        except sqlite3.Error as exc:
            logger.error("Error fetching transaction", exc_info=exc)
            raise StoreError.from_sqlite("Failed to fetch transaction", exc) from exc
        if existing is None:
            raise NotFoundError("Transaction not found")

        try:
            delete_transaction(settings.db_path, id, timeout=settings.db_timeout)
        except sqlite3.Error as exc:
            logger.error(
                "Error deleting transaction", exc_info=exc, extra={"transaction_id": id}
            )
            raise StoreError.from_sqlite("Failed to delete transaction", exc) from exc

        logger.info("Transaction deleted", extra={"transaction_id": id})
        return {"success": True, "message": "Transaction deleted successfully"}

    return app


app = create_app()
