import logging
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Response
from fastapi.responses import JSONResponse, StreamingResponse

from config import get_settings
from database import Base, engine
from gateway import SQLAlchemyGateway
from ledger import (
    LedgerStateError,
    LedgerStore,
    MutationOutcome,
    MutationResult,
    NotFoundError,
    SessionNotOpen,
    SessionRegistry,
    ValidationError,
)
from periods import Granularity, resolve_period
from schemas import (
    BucketOut,
    CategoryOut,
    InitialBalanceIn,
    LedgerStateOut,
    MutationOut,
    OverviewOut,
    SummaryOut,
    TransactionDraft,
    TransactionOut,
)
from services import DEFAULT_SECTIONS, ReportService


settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")
registry = SessionRegistry(SQLAlchemyGateway())


def get_registry() -> SessionRegistry:
    return registry


def get_user_id(x_user_id: str = Header(..., min_length=1, max_length=128)) -> str:
    # identity is established upstream; the header only names the ledger owner
    return x_user_id.strip()


def get_store(
    user_id: str = Depends(get_user_id),
    sessions: SessionRegistry = Depends(get_registry),
) -> LedgerStore:
    try:
        return sessions.get(user_id)
    except SessionNotOpen as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.on_event("startup")
def startup_event():
    Base.metadata.create_all(engine)


def _state(store: LedgerStore) -> LedgerStateOut:
    return LedgerStateOut(
        user_id=store.user_id,
        balance=store.balance,
        initial_balance=store.initial_balance,
        needs_balance_setup=store.needs_balance_setup,
        transaction_count=len(store.transactions),
        consistent=store.is_consistent(),
    )


def _mutation_response(
    result: MutationResult, *, created: bool = False
) -> JSONResponse:
    body = MutationOut(
        success=result.success,
        outcome=result.outcome.value,
        message=result.message,
        balance=result.balance,
        transaction=(
            TransactionOut.from_transaction(result.transaction)
            if result.transaction
            else None
        ),
    )
    if result.outcome == MutationOutcome.not_applied:
        status_code = 502
    elif created and result.success:
        status_code = 201
    else:
        status_code = 200
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.post("/session", response_model=LedgerStateOut)
async def open_session(
    user_id: str = Depends(get_user_id),
    sessions: SessionRegistry = Depends(get_registry),
):
    store = await sessions.open(user_id)
    logger.info(f"ledger_session_opened: user={user_id}")
    return _state(store)


@app.delete("/session", status_code=204)
def close_session(
    user_id: str = Depends(get_user_id),
    sessions: SessionRegistry = Depends(get_registry),
):
    if not sessions.close(user_id):
        raise HTTPException(status_code=404, detail="No open ledger session")
    return Response(status_code=204)


@app.get("/balance", response_model=LedgerStateOut)
def get_balance(store: LedgerStore = Depends(get_store)):
    return _state(store)


@app.post("/balance/initial")
async def set_initial_balance(
    payload: InitialBalanceIn, store: LedgerStore = Depends(get_store)
):
    try:
        result = await store.set_initial_balance(payload.amount)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except LedgerStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _mutation_response(result)


@app.post("/balance/sync")
async def sync_balance(store: LedgerStore = Depends(get_store)):
    try:
        result = await store.sync_balance()
    except LedgerStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _mutation_response(result)


@app.post("/transactions")
async def add_transaction(
    draft: TransactionDraft, store: LedgerStore = Depends(get_store)
):
    try:
        result = await store.add_transaction(draft)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except LedgerStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _mutation_response(result, created=True)


@app.delete("/transactions/{transaction_id}")
async def remove_transaction(
    transaction_id: int, store: LedgerStore = Depends(get_store)
):
    try:
        result = await store.remove_transaction(transaction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except LedgerStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _mutation_response(result)


@app.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    period: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    sort: str = "date",
    order: str = "desc",
    limit: int = Query(50, ge=1, le=1000),
    store: LedgerStore = Depends(get_store),
):
    if order not in {"asc", "desc"}:
        raise HTTPException(status_code=400, detail="Invalid order")
    try:
        window = resolve_period(period, start, end)
        ordered = store.sorted_by(sort, descending=order == "desc")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if window.slug != "all":
        ordered = [
            txn
            for txn in ordered
            if txn.occurred_on is not None and window.contains(txn.occurred_on)
        ]
    return [TransactionOut.from_transaction(txn) for txn in ordered[:limit]]


@app.get("/reports/periods", response_model=list[BucketOut])
def period_report(
    granularity: Granularity = Granularity.monthly,
    store: LedgerStore = Depends(get_store),
):
    return ReportService(store).periods(granularity)


@app.get("/reports/categories", response_model=list[CategoryOut])
def category_report(store: LedgerStore = Depends(get_store)):
    return ReportService(store).categories()


@app.get("/reports/summary", response_model=SummaryOut)
def summary_report(store: LedgerStore = Depends(get_store)):
    return ReportService(store).summary()


@app.get("/reports/overview", response_model=OverviewOut)
def overview_report(
    granularity: Granularity = Granularity.monthly,
    sections: Optional[List[str]] = Query(None),
    store: LedgerStore = Depends(get_store),
):
    try:
        data = ReportService(store).gather_data(
            granularity, sections=sections or DEFAULT_SECTIONS
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return OverviewOut(**data)


@app.get("/export/transactions.csv")
def export_transactions_csv(store: LedgerStore = Depends(get_store)):
    csv_text = ReportService(store).export_csv()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"ledger_export_{timestamp}.csv"
    logger.info(
        f"ledger_export: user={store.user_id} rows={len(store.transactions)}"
    )
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
