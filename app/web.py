from __future__ import annotations

import math
from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from services.dashboard import DashboardService, build_default_dashboard
from services.view_model import DEVICES


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


def get_dashboard() -> DashboardService:
    return build_default_dashboard()


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    dashboard: DashboardService = Depends(get_dashboard),
) -> HTMLResponse:
    frame = dashboard.frame
    refresh_seconds = max(1, math.ceil(dashboard.scheduler.intervals[DEVICES]))
    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "frame": frame,
            "errors": dashboard.view_model.last_errors,
            "refresh_seconds": refresh_seconds,
        },
    )
