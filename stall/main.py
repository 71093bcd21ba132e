from __future__ import annotations

import csv
import io
import logging
from typing import Annotated, Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from . import aggregates, backoffice, crud, grouping, ledger, notifier, schemas, store
from .config import get_settings
from .database import get_session, init_db
from .errors import InvalidInput, InvalidTransition, OrderNotFound, StoreUnavailable
from .menu_data import (
    COLD_DRINK_PRICES,
    CUP_PRICES,
    CUP_TYPES,
    PAYMENT_METHODS,
    RED_TEA_TYPES,
    SUGAR_LEVELS,
    SWEETS_BASE_PRICES,
    SWEETS_OPTIONS,
    THERMOS_CATEGORIES,
    restock_items,
    safe_id,
)
from .pricing import price_for_item
from .shifts import RUSH_BIN_COUNT, from_epoch_ms, rush_bin_label

logger = logging.getLogger(__name__)

app = FastAPI(title="Karak Stall Orders", version="0.1.0")
settings = get_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()


@app.exception_handler(StoreUnavailable)
def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.warning("Store unavailable on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "Please try again"})


@app.exception_handler(SQLAlchemyError)
def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s", request.url.path)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "Please try again"})


def verify_access_key(
    x_access_key: Annotated[str | None, Header(alias="X-Access-Key")] = None
) -> None:
    if settings.access_key and x_access_key != settings.access_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access key",
        )


AccessGuard = Annotated[None, Depends(verify_access_key)]


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, OrderNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if isinstance(exc, InvalidTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok"}


@app.get("/meta/options", response_model=schemas.OptionsResponse)
def get_options(_: AccessGuard):
    drinks = [schemas.MenuOption(drink_type=name, prices=prices) for name, prices in CUP_PRICES.items()]
    drinks.append(schemas.MenuOption(drink_type="Cold Drink", prices=COLD_DRINK_PRICES))
    drinks.append(schemas.MenuOption(drink_type="Sweets", prices=SWEETS_BASE_PRICES))
    return schemas.OptionsResponse(
        drinks=drinks,
        cup_types=list(CUP_TYPES),
        sugar_levels=list(SUGAR_LEVELS),
        red_tea_types=list(RED_TEA_TYPES),
        sweets_options=list(SWEETS_OPTIONS),
        payment_methods=list(PAYMENT_METHODS),
        restock_items=restock_items(),
    )


# -------------------------
# Orders
# -------------------------

@app.post("/orders/quote", response_model=schemas.PriceQuote)
def quote_item(
    payload: schemas.CartItem,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        return price_for_item(payload.item, backoffice.unit_costs(session))
    except InvalidInput as exc:
        raise _http_error(exc) from exc


@app.get("/orders", response_model=List[schemas.OrderRead])
def list_orders(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return crud.list_orders(session)


@app.post("/orders", response_model=List[schemas.OrderRead], status_code=status.HTTP_201_CREATED)
def submit_cart(
    payload: schemas.CartSubmit,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        return crud.create_batch(
            session,
            payload.entries,
            license_plate=payload.license_plate,
            notes=payload.notes,
            costs=backoffice.unit_costs(session),
        )
    except InvalidInput as exc:
        raise _http_error(exc) from exc


@app.get("/board", response_model=schemas.BoardResponse)
def board(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    orders = crud.list_orders(session)
    buckets = aggregates.kanban_buckets(orders)

    def read(view: str) -> List[schemas.GroupRead]:
        return [
            schemas.GroupRead(
                id=group.id,
                license_plate=group.license_plate,
                notes=group.notes,
                total=grouping.group_total(group.items),
                items=group.items,
            )
            for group in grouping.visible_groups(orders, view)
        ]

    return schemas.BoardResponse(
        preparing=read("preparing"),
        ready=read("ready"),
        preparing_count=len(buckets["preparing"]),
        ready_count=len(buckets["ready"]),
    )


@app.post("/orders/complete", response_model=schemas.CompletionRead)
def complete_group(
    payload: schemas.CompleteGroupRequest,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        return crud.complete_group(session, payload.order_ids, payload.payment_method)
    except (OrderNotFound, InvalidTransition) as exc:
        raise _http_error(exc) from exc


@app.post("/orders/archive", response_model=schemas.ArchiveResult)
def archive_orders(
    payload: schemas.ArchiveRequest,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return schemas.ArchiveResult(archived=crud.archive_completed(session, days=payload.days))


@app.post("/orders/idle-separator", response_model=Optional[schemas.OrderRead])
def idle_separator(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return crud.insert_idle_separator(session)


@app.get("/orders/export", response_class=PlainTextResponse)
def export_orders(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    orders = aggregates.completed_items(crud.list_orders(session))
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([
        "id",
        "completed_at",
        "drink_type",
        "details",
        "quantity",
        "total_price",
        "total_cost",
        "payment_method",
        "license_plate",
        "notes",
    ])
    for order in orders:
        completed = aggregates.event_time(order)
        writer.writerow([
            order.id,
            completed.isoformat() if completed else "",
            order.drink_type,
            order.cold_drink_name or order.sweets_option or order.cup_type or "",
            order.quantity,
            f"{order.total_price or 0:.3f}",
            f"{order.total_cost or 0:.3f}",
            order.payment_method or "",
            order.license_plate or "",
            order.notes or "",
        ])
    csv_content = buffer.getvalue()
    headers = {
        "Content-Disposition": "attachment; filename=orders.csv",
    }
    return PlainTextResponse(content=csv_content, media_type="text/csv", headers=headers)


@app.post("/orders/{order_id}/ready", response_model=schemas.OrderRead)
def mark_ready(
    order_id: str,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        return crud.mark_ready(session, order_id)
    except (OrderNotFound, InvalidTransition) as exc:
        raise _http_error(exc) from exc


@app.put("/orders/{order_id}", response_model=List[schemas.OrderRead])
def update_order(
    order_id: str,
    payload: schemas.OrderUpdate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        return crud.update_plate_notes(session, order_id, payload.license_plate, payload.notes)
    except OrderNotFound as exc:
        raise _http_error(exc) from exc


@app.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(
    order_id: str,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        crud.delete_order(session, order_id)
    except (OrderNotFound, InvalidTransition) as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -------------------------
# Reports
# -------------------------

@app.get("/reports/summary", response_model=schemas.SummaryResponse)
def summary(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    start = backoffice.shift_start(session)
    data = aggregates.financial_summary(crud.list_orders(session), start)
    cash = backoffice.opening_cash(session)
    return schemas.SummaryResponse(
        **data,
        shift_start=start,
        opening_cash=cash,
        in_drawer=backoffice.in_drawer(cash, data["by_pay"]),
    )


@app.get("/reports/day/{date_key}", response_model=schemas.DayReport)
def day_report(
    date_key: str,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return aggregates.day_report(crud.list_orders(session), date_key)


@app.get("/reports/day/{date_key}/text", response_class=PlainTextResponse)
def day_report_text(
    date_key: str,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        return backoffice.day_report_text(session, crud.list_orders(session), date_key)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="date_key must be YYYY-MM-DD") from exc


@app.get("/reports/rush", response_model=schemas.RushResponse)
def rush(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    reset_at = backoffice.rush_reset_at(session)
    counts = aggregates.rush_histogram(crud.list_orders(session), reset_at)
    return schemas.RushResponse(
        reset_at=reset_at,
        peak=max(counts) if counts else 0,
        bins=[schemas.RushBin(label=rush_bin_label(i), count=counts[i]) for i in range(RUSH_BIN_COUNT)],
    )


@app.post("/reports/rush/reset", response_model=schemas.RushResponse)
def reset_rush(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    reset_at = backoffice.reset_rush(session)
    counts = aggregates.rush_histogram(crud.list_orders(session), reset_at)
    return schemas.RushResponse(
        reset_at=reset_at,
        peak=max(counts),
        bins=[schemas.RushBin(label=rush_bin_label(i), count=counts[i]) for i in range(RUSH_BIN_COUNT)],
    )


@app.get("/reports/consumables", response_model=schemas.ConsumablesReport)
def consumables(
    _: AccessGuard,
    date_key: Optional[str] = None,
    session: Session = Depends(get_session),
):
    day = date_key or backoffice.today_key()
    return aggregates.consumables(aggregates.orders_for_day(crud.list_orders(session), day))


@app.get("/reports/profit", response_model=schemas.ProfitResponse)
def profit(
    _: AccessGuard,
    date_key: Optional[str] = None,
    session: Session = Depends(get_session),
):
    day = date_key or backoffice.today_key()
    return backoffice.profit_for_day(session, crud.list_orders(session), day)


# -------------------------
# Thermos, inventory, loyalty
# -------------------------

def _thermos_read(category: str, state: Dict[str, Any]) -> schemas.ThermosRead:
    last = state.get("lastReheatedAt")
    capacity = state.get("maxCapacity_ml") or settings.thermos_capacity_ml
    return schemas.ThermosRead(
        category=category,
        current_level_ml=state["currentLevel_ml"],
        max_capacity_ml=capacity,
        refills=int(state.get("refills") or 0),
        last_reheated_at=from_epoch_ms(last) if isinstance(last, (int, float)) else None,
        percent=state.get("percent", round(state["currentLevel_ml"] / capacity * 100, 1)),
        stale=state.get("stale", ledger.is_stale(state)),
    )


def _check_category(category: str) -> None:
    if category not in THERMOS_CATEGORIES:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown thermos")


@app.get("/thermos", response_model=List[schemas.ThermosRead])
def thermos(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    snapshot = ledger.thermos_snapshot(session)
    return [_thermos_read(category, snapshot[category]) for category in THERMOS_CATEGORIES]


@app.post("/thermos/reset-refills", response_model=List[schemas.ThermosRead])
def reset_refills(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    ledger.reset_refill_counters(session)
    snapshot = ledger.thermos_snapshot(session)
    return [_thermos_read(category, snapshot[category]) for category in THERMOS_CATEGORIES]


@app.post("/thermos/{category}/adjust", response_model=schemas.ThermosRead)
def adjust_thermos(
    category: str,
    payload: schemas.ThermosAdjust,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    _check_category(category)
    return _thermos_read(category, ledger.adjust_level(session, category, payload.delta_ml))


@app.post("/thermos/{category}/refill", response_model=schemas.ThermosRead)
def refill_thermos(
    category: str,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    _check_category(category)
    return _thermos_read(category, ledger.log_refill_and_reheat(session, category))


@app.post("/thermos/{category}/reheat", response_model=schemas.ThermosRead)
def reheat_thermos(
    category: str,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    _check_category(category)
    return _thermos_read(category, ledger.log_reheat_only(session, category))


@app.get("/inventory", response_model=List[schemas.InventoryItem])
def inventory(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    levels = ledger.inventory_levels(session)
    low = set(ledger.low_stock_keys(levels))
    return [
        schemas.InventoryItem(key=key, quantity=levels.get(key, 0), low=key in low)
        for key in sorted(set(levels) | low)
    ]


@app.post("/inventory/restock", response_model=schemas.InventoryItem)
def restock(
    payload: schemas.RestockRequest,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    level = backoffice.restock(session, payload)
    key = safe_id(payload.item)
    return schemas.InventoryItem(key=key, quantity=level, low=key in ledger.low_stock_keys({key: level}))


@app.get("/loyalty/{plate}", response_model=schemas.LoyaltyRead)
def loyalty(
    plate: str,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    record = store.get(session, ledger.loyalty_path(plate)) or {}
    return schemas.LoyaltyRead(
        plate=plate,
        count=int(record.get("count") or 0),
        last_visit_shift=record.get("lastVisitShift"),
        note=crud.latest_plate_note(session, plate),
    )


# -------------------------
# Back office
# -------------------------

@app.get("/settings/costs", response_model=Dict[str, float])
def get_costs(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return backoffice.unit_costs(session)


@app.put("/settings/costs/{item:path}", response_model=Dict[str, float])
def set_cost(
    item: str,
    payload: schemas.CostUpdate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        backoffice.set_unit_cost(session, item, payload.cost)
    except InvalidInput as exc:
        raise _http_error(exc) from exc
    return backoffice.unit_costs(session)


@app.get("/expenses", response_model=List[schemas.ExpenseRead])
def list_expenses(
    _: AccessGuard,
    today: bool = False,
    session: Session = Depends(get_session),
):
    return backoffice.list_expenses(session, backoffice.today_key() if today else None)


@app.post("/expenses", response_model=schemas.ExpenseRead, status_code=status.HTTP_201_CREATED)
def create_expense(
    payload: schemas.ExpenseCreate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        return backoffice.log_expense(session, payload)
    except InvalidInput as exc:
        raise _http_error(exc) from exc


@app.delete("/expenses/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(
    expense_id: int,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    if not backoffice.delete_expense(session, expense_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/waste", response_model=List[schemas.WasteRead])
def list_waste(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return backoffice.list_waste(session)


@app.post("/waste", response_model=schemas.WasteRead, status_code=status.HTTP_201_CREATED)
def create_waste(
    payload: schemas.WasteCreate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return backoffice.log_waste(session, payload)


@app.get("/breakeven", response_model=schemas.BreakevenRead)
def get_breakeven(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    data = aggregates.financial_summary(crud.list_orders(session), backoffice.shift_start(session))
    return backoffice.breakeven(session, data["total"])


@app.put("/breakeven", response_model=schemas.BreakevenRead)
def set_breakeven(
    payload: schemas.BreakevenUpdate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    backoffice.set_breakeven_target(session, payload.target)
    data = aggregates.financial_summary(crud.list_orders(session), backoffice.shift_start(session))
    return backoffice.breakeven(session, data["total"])


@app.get("/shift", response_model=schemas.ShiftRead)
def get_shift(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return schemas.ShiftRead(start_at=backoffice.shift_start(session), opening_cash=backoffice.opening_cash(session))


@app.post("/shift/start", response_model=schemas.ShiftRead)
def start_shift(
    payload: schemas.ShiftStart,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return backoffice.start_shift(session, payload.opening_cash)


@app.get("/shift/export")
def export_shift(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return backoffice.export_shift(session)


@app.post("/shift/import", response_model=schemas.ShiftImportResult)
def import_shift(
    _: AccessGuard,
    payload: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
):
    try:
        return backoffice.import_shift(session, payload)
    except InvalidInput as exc:
        raise _http_error(exc) from exc


@app.get("/timers", response_model=List[schemas.TimerRead])
def list_timers(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return backoffice.list_timers(session)


@app.post("/timers/{timer_type}/start", response_model=schemas.TimerRead)
def start_timer(
    timer_type: str,
    payload: schemas.TimerStart,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        return backoffice.start_timer(session, timer_type, payload.minutes)
    except InvalidInput as exc:
        raise _http_error(exc) from exc


@app.post("/timers/{timer_type}/stop", response_model=schemas.TimerRead)
def stop_timer(
    timer_type: str,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    try:
        return backoffice.stop_timer(session, timer_type)
    except InvalidInput as exc:
        raise _http_error(exc) from exc


@app.get("/alerts", response_model=List[schemas.AlertRead])
def alerts(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return notifier.recent_alerts(session)


@app.post("/maintenance/backfill-completed-at")
def backfill_completed_at(
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    return {"updated": crud.backfill_completed_at(session)}
