"""Mini README: FastAPI JSON API over a single budget tree.

Structure:
    * create_application - application factory wiring routes to one budget.
    * Request models - Pydantic bodies for line, move, overhead and rate edits.

Lines are addressed by their index path (``0`` for the root, ``2.1`` for the
first child of the second heading). Lookups that fail return 404 and
mutations the tree rejects return 400 with the tree left unchanged. When a
``BudgetStore`` is supplied the budget is loaded from it on start-up and
saved after edits through an ``AutosaveObserver``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Literal, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..budget import BudgetLine, MoveMode
from ..configuration import DraftBudgetSettings, get_settings
from ..currency import CurrencyResolver, get_resolver
from ..logging_utils import get_logger
from ..serialization import export_record
from ..storage import AutosaveObserver, BudgetStore

LOGGER = get_logger(__name__)


class LineFields(BaseModel):
    """Editable line fields; omitted fields are left as they are."""

    title: Optional[str] = None
    unit_number: Optional[float] = None
    unit_type: Optional[str] = None
    unit_cost: Optional[float] = None
    unit_currency: Optional[str] = None
    frequency: Optional[int] = None
    currency: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    category: Optional[List[str]] = None


class NewLineRequest(LineFields):
    position: Optional[Union[int, str]] = Field(
        None, description="1-based position, or a dotted path relative to the parent line."
    )


class MoveRequest(BaseModel):
    target: Union[str, int]
    mode: MoveMode = MoveMode.APPEND


class OverheadRequest(BaseModel):
    title: str = "Overhead"
    percentage: float
    currency: Optional[str] = None


class OverheadMoveRequest(BaseModel):
    direction: Literal["up", "down"]


class RatesRequest(BaseModel):
    rates: Dict[str, float]


def create_application(
    budget: Optional[BudgetLine] = None,
    store: Optional[BudgetStore] = None,
    *,
    settings: Optional[DraftBudgetSettings] = None,
    resolver: Optional[CurrencyResolver] = None,
) -> FastAPI:
    """Create the FastAPI application serving ``budget`` (or a loaded/new one)."""

    settings = settings or get_settings()
    resolver = resolver or get_resolver()

    if budget is None and store is not None:
        budget = store.load(settings=settings, resolver=resolver)
    if budget is None:
        budget = BudgetLine(title="My new budget", settings=settings, resolver=resolver)
    root = budget.root
    autosave = AutosaveObserver(store, root) if store is not None else None

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        """Write edits still held back by the debounce when the app stops."""

        yield
        if autosave is not None:
            autosave.close()
            LOGGER.info("Pending budget edits written on shutdown")

    app = FastAPI(title="DraftBudget", version="0.3.0", lifespan=lifespan)
    app.state.budget = root
    app.state.autosave = autosave

    def line_or_404(index: str) -> BudgetLine:
        """Resolve an absolute index or answer 404."""

        line = root.get_by_index(index)
        if line is None:
            raise HTTPException(status_code=404, detail=f"Line {index} not found")
        return line

    def saved(payload: object, status_code: int = 200) -> JSONResponse:
        """Flush the autosave observer, then build the response."""

        if autosave is not None:
            autosave.flush()
        return JSONResponse(payload, status_code=status_code)

    @app.get("/budget")
    async def read_budget() -> JSONResponse:
        """Return the full budget record."""

        return JSONResponse(export_record(root))

    @app.get("/budget/lines/{index}")
    async def read_line(index: str) -> JSONResponse:
        """Return the record of one line and its subtree."""

        return JSONResponse(export_record(line_or_404(index)))

    @app.post("/budget/lines/{index}/children")
    async def add_line(index: str, request: NewLineRequest) -> JSONResponse:
        """Add a child below the addressed line."""

        parent = line_or_404(index)
        options = request.model_dump(exclude_none=True, exclude={"position"})
        line = parent.add(options, request.position)
        if line is None:
            raise HTTPException(status_code=400, detail=f"Line {index} cannot take another child here")
        LOGGER.debug("API added line %s", line.index)
        return saved(export_record(line), status_code=201)

    @app.patch("/budget/lines/{index}")
    async def update_line(index: str, request: LineFields) -> JSONResponse:
        """Assign the supplied fields in a single update."""

        line = line_or_404(index)
        line.update(request.model_dump(exclude_none=True))
        return saved(export_record(line))

    @app.delete("/budget/lines/{index}")
    async def delete_line(index: str) -> JSONResponse:
        """Remove a line; the root cannot be deleted."""

        line = line_or_404(index)
        if not line.remove():
            raise HTTPException(status_code=400, detail="The root line cannot be removed")
        return saved({"deleted": index, "total": export_record(root)["total"]})

    @app.post("/budget/lines/{index}/move")
    async def move_line(index: str, request: MoveRequest) -> JSONResponse:
        """Relocate a line; depth and cycle violations are rejected with 400."""

        line = line_or_404(index)
        if not line.move(request.target, request.mode):
            raise HTTPException(
                status_code=400,
                detail=f"Line {index} cannot be moved to {request.target} ({request.mode.value})",
            )
        return saved({"index": line.index, "budget": export_record(root)})

    @app.post("/budget/lines/{index}/overheads")
    async def add_overhead(index: str, request: OverheadRequest) -> JSONResponse:
        """Append an overhead to the addressed line."""

        line = line_or_404(index)
        line.add_overhead(request.title, request.percentage, request.currency)
        return saved(export_record(line), status_code=201)

    @app.post("/budget/lines/{index}/overheads/{position}/move")
    async def move_overhead(index: str, position: int, request: OverheadMoveRequest) -> JSONResponse:
        """Swap an overhead with its neighbour."""

        line = line_or_404(index)
        moved = line.move_overhead_up(position) if request.direction == "up" else line.move_overhead_down(position)
        if not moved:
            raise HTTPException(status_code=400, detail=f"Overhead {position} cannot move {request.direction}")
        return saved(export_record(line))

    @app.delete("/budget/lines/{index}/overheads/{position}")
    async def delete_overhead(index: str, position: int) -> JSONResponse:
        """Remove an overhead by its 0-based position."""

        line = line_or_404(index)
        if not line.remove_overhead(position):
            raise HTTPException(status_code=404, detail=f"Line {index} has no overhead {position}")
        return saved(export_record(line))

    @app.get("/budget/categories/{tag}")
    async def list_category(tag: str) -> JSONResponse:
        """List the indexes of lines tagged with ``tag``."""

        return JSONResponse({"category": tag, "lines": root.list_category(tag)})

    @app.get("/budget/currencies")
    async def currencies() -> JSONResponse:
        """Report the currencies in use and whether any rate is missing."""

        return JSONResponse(
            {
                "currencies": root.currencies,
                "rate_unavailable": root.rate_unavailable,
                "pending_bases": sorted(root.resolver.pending_bases),
            }
        )

    @app.put("/rates/{base}")
    async def load_rates(base: str, request: RatesRequest) -> JSONResponse:
        """Feed freshly fetched rates for ``base`` into the resolver."""

        table = root.resolver.load_rates(base, request.rates)
        LOGGER.info("API loaded %s rates for %s", len(table.rates), table.base)
        return JSONResponse({"base": table.base, "rates": table.rates, "total": export_record(root)["total"]})

    return app


def create_default_application() -> FastAPI:
    """Factory used by uvicorn: serve the budget saved under the data directory."""

    settings = get_settings()
    return create_application(store=BudgetStore(settings.budget_path), settings=settings)
