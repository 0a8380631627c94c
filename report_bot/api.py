"""Read-only HTTP status API over the report repository.

Pagination happens here; the repository always hands out full lists.
Run together with the bot by setting ``API_ENABLED=true``.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from .constants import APP_VERSION
from .excel import SpreadsheetExporter
from .repository import ReportRepository

ENDPOINTS = {
    "GET /api/health": "Проверка здоровья системы",
    "GET /api/stats": "Статистика системы",
    "GET /api/reports": "Список отчётов (с пагинацией)",
    "GET /api/users": "Список пользователей",
    "GET /api/export/excel": "Экспорт всех отчётов в Excel",
    "GET /api/docs/endpoints": "Список эндпоинтов",
}


def create_api(
    repository: ReportRepository,
    exporter: SpreadsheetExporter,
    numeric_keys: Sequence[str] | None = None,
    bot_running: Callable[[], bool] = lambda: False,
    lifespan: Any = None,
) -> FastAPI:
    app = FastAPI(title="Field Report Bot", version=APP_VERSION, lifespan=lifespan)

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "bot": "running" if bot_running() else "disabled",
            "version": APP_VERSION,
        }

    @app.get("/api/stats")
    def stats() -> dict[str, Any]:
        aggregate = repository.aggregate(numeric_keys)
        today_reports = len(repository.created_on(datetime.now(timezone.utc).date()))
        return {
            "totalReports": aggregate.total_reports,
            "activeUsers": aggregate.unique_users,
            "todayReports": today_reports,
            "totals": aggregate.totals,
            "lastActivity": aggregate.last_activity.isoformat() if aggregate.last_activity else None,
            "botActive": bot_running(),
        }

    @app.get("/api/reports")
    def reports(
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
    ) -> dict[str, Any]:
        all_reports = repository.all()
        start = (page - 1) * limit
        return {
            "success": True,
            "data": [r.to_dict() for r in all_reports[start : start + limit]],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": len(all_reports),
                "totalPages": math.ceil(len(all_reports) / limit),
            },
        }

    @app.get("/api/users")
    def users() -> dict[str, Any]:
        return {
            "users": [
                {
                    "userId": summary.user_id,
                    "name": summary.name,
                    "reportsCount": summary.reports_count,
                    "lastActivity": summary.last_activity.isoformat(),
                    "lastReport": summary.last_customer,
                }
                for summary in repository.users()
            ]
        }

    @app.get("/api/export/excel")
    def export_excel() -> FileResponse:
        all_reports = repository.all()
        if not all_reports:
            raise HTTPException(404, "Нет данных для экспорта")

        path = exporter.generate_summary(all_reports, title="Полный экспорт")
        filename = f"reports_export_{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.xlsx"
        return FileResponse(
            path,
            filename=filename,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            background=BackgroundTask(path.unlink, missing_ok=True),
        )

    @app.get("/api/docs/endpoints")
    def endpoints() -> dict[str, Any]:
        return {"endpoints": ENDPOINTS}

    return app
