from __future__ import annotations

from datetime import date
import logging
import math
from typing import Dict, Optional

import numpy as np
import pandas as pd
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.encoders import jsonable_encoder

from api.auth import require_viewer
from api.schemas import DashboardFiltersModel, ErrorResponse
from api.settings import Settings, build_source, get_settings, today
from rollup.data import PAGE_RANGES, load_dashboard_data, prepare_context
from rollup.errors import ConfigurationMissing, DashboardError, SourceUnavailable
from rollup.filters import DashboardFilters, Viewer, normalize_filters
from rollup.metrics_issues import compute_dietitian_gaps, compute_key_mapping, compute_underperformers
from rollup.metrics_quality import compute_customer_rating, compute_quality
from rollup.metrics_revenue import compute_hierarchy, compute_revenue
from rollup.source import SheetSource


app = FastAPI(title="Dietitian Rollup API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:8501"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {SourceUnavailable: 502, ConfigurationMissing: 500}


def get_source(settings: Settings = Depends(get_settings)) -> SheetSource:
    return build_source(settings)


def get_today(settings: Settings = Depends(get_settings)) -> date:
    return today(settings)


def _filters_from_model(model: DashboardFiltersModel) -> DashboardFilters:
    return normalize_filters(model.model_dump())


def _context(page: str, f: DashboardFilters, source: SheetSource, day: date, viewer: Viewer) -> Dict[str, object]:
    data_ctx = load_dashboard_data(source, include=PAGE_RANGES[page], today=day)
    return prepare_context(f, data_ctx, viewer)


def _error(exc: Exception, status_code: int = 500, kind: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=str(exc), type=kind or type(exc).__name__)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
                date: lambda d: d.isoformat(),
            },
        )
    )


@app.exception_handler(DashboardError)
def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 500)
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return _error(exc, status_code)


@app.exception_handler(HTTPException)
def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    kind = "Unauthorized" if exc.status_code == 401 else "HTTPError"
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail), "type": kind})


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/hierarchy")
def hierarchy(
    selected_sm: Optional[str] = Query(default=None),
    viewer: Viewer = Depends(require_viewer),
    source: SheetSource = Depends(get_source),
    day: date = Depends(get_today),
):
    try:
        f = normalize_filters({"selected_sm": selected_sm})
        ctx = _context("hierarchy", f, source, day, viewer)
        return _json(compute_hierarchy(f, ctx))
    except DashboardError as exc:
        return _error(exc, ERROR_STATUS.get(type(exc), 500))
    except Exception as exc:
        logger.exception("hierarchy failed")
        return _error(exc)


@app.post("/revenue")
def revenue(
    filters: DashboardFiltersModel,
    viewer: Viewer = Depends(require_viewer),
    source: SheetSource = Depends(get_source),
    day: date = Depends(get_today),
):
    try:
        f = _filters_from_model(filters)
        ctx = _context("revenue", f, source, day, viewer)
        return _json(compute_revenue(f, ctx))
    except DashboardError as exc:
        return _error(exc, ERROR_STATUS.get(type(exc), 500))
    except Exception as exc:
        logger.exception("revenue failed")
        return _error(exc)


@app.post("/quality")
def quality(
    filters: DashboardFiltersModel,
    viewer: Viewer = Depends(require_viewer),
    source: SheetSource = Depends(get_source),
    day: date = Depends(get_today),
):
    try:
        f = _filters_from_model(filters)
        ctx = _context("quality", f, source, day, viewer)
        return _json(compute_quality(f, ctx))
    except DashboardError as exc:
        return _error(exc, ERROR_STATUS.get(type(exc), 500))
    except Exception as exc:
        logger.exception("quality failed")
        return _error(exc)


@app.post("/customer-rating")
def customer_rating(
    filters: DashboardFiltersModel,
    viewer: Viewer = Depends(require_viewer),
    source: SheetSource = Depends(get_source),
    day: date = Depends(get_today),
):
    try:
        f = _filters_from_model(filters)
        ctx = _context("customer_rating", f, source, day, viewer)
        return _json(compute_customer_rating(f, ctx))
    except DashboardError as exc:
        return _error(exc, ERROR_STATUS.get(type(exc), 500))
    except Exception as exc:
        logger.exception("customer_rating failed")
        return _error(exc)


@app.post("/dietitian-gaps")
def dietitian_gaps(
    filters: DashboardFiltersModel,
    viewer: Viewer = Depends(require_viewer),
    source: SheetSource = Depends(get_source),
    day: date = Depends(get_today),
):
    try:
        f = _filters_from_model(filters)
        ctx = _context("dietitian_gaps", f, source, day, viewer)
        return _json(compute_dietitian_gaps(f, ctx))
    except DashboardError as exc:
        return _error(exc, ERROR_STATUS.get(type(exc), 500))
    except Exception as exc:
        logger.exception("dietitian_gaps failed")
        return _error(exc)


@app.post("/underperformers")
def underperformers(
    filters: DashboardFiltersModel,
    threshold_pct: Optional[float] = Query(default=None, ge=0),
    viewer: Viewer = Depends(require_viewer),
    source: SheetSource = Depends(get_source),
    day: date = Depends(get_today),
):
    try:
        f = _filters_from_model(filters)
        ctx = _context("underperformers", f, source, day, viewer)
        return _json(compute_underperformers(f, ctx, threshold_pct=threshold_pct))
    except DashboardError as exc:
        return _error(exc, ERROR_STATUS.get(type(exc), 500))
    except Exception as exc:
        logger.exception("underperformers failed")
        return _error(exc)


@app.get("/key-mapping")
def key_mapping(
    viewer: Viewer = Depends(require_viewer),
    source: SheetSource = Depends(get_source),
    day: date = Depends(get_today),
):
    try:
        f = DashboardFilters()
        ctx = _context("key_mapping", f, source, day, viewer)
        return _json(compute_key_mapping(f, ctx))
    except DashboardError as exc:
        return _error(exc, ERROR_STATUS.get(type(exc), 500))
    except Exception as exc:
        logger.exception("key_mapping failed")
        return _error(exc)


@app.post("/export/{page}")
def export_page(
    page: str,
    filters: DashboardFiltersModel,
    threshold_pct: Optional[float] = Query(default=None, ge=0),
    viewer: Viewer = Depends(require_viewer),
    source: SheetSource = Depends(get_source),
    day: date = Depends(get_today),
):
    f = _filters_from_model(filters)

    export_df = None
    filename = f"{page}.csv"
    if page in {"gaps", "dietitian-gaps"}:
        ctx = _context("dietitian_gaps", f, source, day, viewer)
        export_df = pd.DataFrame(compute_dietitian_gaps(f, ctx)["dietitian_gaps"])
        filename = "dietitian-gaps.csv"
    elif page == "underperformers":
        ctx = _context("underperformers", f, source, day, viewer)
        rows = compute_underperformers(f, ctx, threshold_pct=threshold_pct)["underperformers"]
        export_df = pd.json_normalize(rows, sep="_") if rows else pd.DataFrame()
    else:
        export_df = pd.DataFrame()

    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})


def run(host: str = "127.0.0.1", port: int = 8000) -> None:
    uvicorn.run("api.main:app", host=host, port=port)


if __name__ == "__main__":
    run()
