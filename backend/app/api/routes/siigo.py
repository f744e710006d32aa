"""Siigo invoice export route."""

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import Response

from app.core.rate_limit import limiter
from app.core.rbac import RequireOperator
from app.db.session import DbSession
from app.services.rips_service import deliveries_in_period
from app.services.siigo_service import build_lines, filter_by_eps, group_by_eps, render_csv, summarize_groups

router = APIRouter()

PREVIEW_LINES = 50


@router.get("/")
@limiter.limit("10/minute")
def export_siigo(
    request: Request,
    db: DbSession,
    current_user: RequireOperator,
    start_date: date,
    end_date: date,
    eps_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    format: Literal["preview", "json", "csv"] = "csv",
):
    deliveries = filter_by_eps(
        deliveries_in_period(db, current_user.organization_id, start_date, end_date, warehouse_id),
        eps_id,
    )
    if not deliveries:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No hay entregas en el periodo seleccionado",
        )

    groups = group_by_eps(deliveries)
    lines = build_lines(groups, start_date)
    stats = {
        "total_entregas": len(deliveries),
        "total_eps": len(groups),
        "total_lineas": len(lines),
        "valor_total": round(sum(line["valor_total"] for line in lines), 2),
        "periodo_inicio": start_date.isoformat(),
        "periodo_fin": end_date.isoformat(),
    }

    if format == "preview":
        return {
            "preview": True,
            "stats": stats,
            "lineas": lines[:PREVIEW_LINES],
            "facturas_por_eps": summarize_groups(groups),
        }
    if format == "json":
        return {"stats": stats, "lineas": lines}

    filename = f"Factura_Siigo_{start_date.isoformat()}_{end_date.isoformat()}.csv"
    return Response(
        content=render_csv(lines),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
