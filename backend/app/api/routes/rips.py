"""RIPS (Resolución 2275/2023) export route."""

import json
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import Response

from app.core.rate_limit import limiter
from app.core.rbac import RequireOperator
from app.db.session import DbSession
from app.services.rips_service import build_rips, deliveries_in_period

router = APIRouter()


@router.get("/")
@limiter.limit("10/minute")
def export_rips(
    request: Request,
    db: DbSession,
    current_user: RequireOperator,
    start_date: date,
    end_date: date,
    warehouse_id: Optional[int] = None,
    preview: bool = False,
):
    if end_date < start_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date debe ser posterior a start_date")

    deliveries = deliveries_in_period(db, current_user.organization_id, start_date, end_date, warehouse_id)
    if not deliveries:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No hay entregas en el periodo seleccionado",
        )

    rips = build_rips(deliveries, start_date, end_date)
    if preview:
        return {
            "preview": True,
            "stats": {
                "total_entregas": len(deliveries),
                "total_usuarios": len(rips["usuarios"]),
                "total_medicamentos": len(rips["medicamentos"]),
                "periodo_inicio": start_date.isoformat(),
                "periodo_fin": end_date.isoformat(),
            },
            "rips": rips,
        }

    filename = f"RIPS_{start_date.isoformat()}_{end_date.isoformat()}.json"
    return Response(
        content=json.dumps(rips, ensure_ascii=False, indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
