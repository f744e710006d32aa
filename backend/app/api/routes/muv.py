"""MUV (Mecanismo Único de Validación) routes."""

from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.core.rate_limit import limiter
from app.core.rbac import RequireOperator
from app.db.session import DbSession
from app.models.audit import AuditLog
from app.schemas.muv import MUVSubmission
from app.services.muv_service import MUV_ENTITY, MUVClient, get_muv_client, record_submission
from app.services.rips_service import validate_rips_structure

router = APIRouter()

HISTORY_LIMIT = 50


@router.get("/")
@limiter.limit("30/minute")
async def muv_info(
    request: Request,
    db: DbSession,
    current_user: RequireOperator,
    client: Annotated[MUVClient, Depends(get_muv_client)],
    action: Literal["status", "consultar", "historial"] = "status",
    cuv: Optional[str] = None,
):
    """Configuration status, CUV lookup or submission history."""
    if action == "status":
        config = client.configuration_status()
        return {
            **config,
            "mensaje": "MUV configurado correctamente"
            if config["configurado"]
            else "Configure las variables de entorno del MUV",
        }

    if action == "consultar":
        if not cuv:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="cuv es requerido")
        result = await client.query_cuv(cuv)
        return result.to_dict()

    logs = (
        db.query(AuditLog)
        .filter(AuditLog.organization_id == current_user.organization_id, AuditLog.entity == MUV_ENTITY)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(HISTORY_LIMIT)
        .all()
    )
    return {
        "envios": [
            {
                "id": log.id,
                "cuv": log.entity_id,
                "fecha": log.created_at.isoformat(),
                "estado": (log.new_values or {}).get("estado"),
                "mensaje": (log.new_values or {}).get("mensaje"),
                "num_factura": (log.new_values or {}).get("numFactura"),
                "usuario": log.user.name if log.user else "Sistema",
            }
            for log in logs
        ]
    }


@router.post("/")
@limiter.limit("10/minute")
async def submit_to_muv(
    request: Request,
    body: MUVSubmission,
    db: DbSession,
    current_user: RequireOperator,
    client: Annotated[MUVClient, Depends(get_muv_client)],
):
    """Validate locally, then (unless ``validar_solo``) submit to the MUV."""
    errors = validate_rips_structure(body.rips_json)
    if errors:
        return {
            "success": False,
            "etapa": "VALIDACION_LOCAL",
            "mensaje": "RIPS no pasa validación local",
            "errores": errors,
        }
    if body.validar_solo:
        return {
            "success": True,
            "etapa": "VALIDACION_LOCAL",
            "mensaje": "RIPS válidos para envío al MUV",
            "errores": [],
        }

    result = await client.submit_rips(body.rips_json, body.fev_xml)
    record_submission(db, current_user.organization_id, current_user.user_id, body.rips_json, result)
    return {"etapa": "MUV", **result.to_dict()}
