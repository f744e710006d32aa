"""Client for MUV (Mecanismo Único de Validación), the Ministry of Health
service that validates RIPS and issues a CUV (Código Único de Validación).
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from app.core.config import Settings, settings
from app.services.audit_service import CREATE, UPDATE, log_action

logger = logging.getLogger(__name__)

MUV_ENTITY = "muv_validation"


@dataclass
class MUVResult:
    success: bool
    mensaje: str
    cuv: Optional[str] = None
    estado: Optional[str] = None
    fecha_validacion: Optional[str] = None
    errores: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MUVClient:
    """Async MUV API client.

    ``transport`` lets tests plug in an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config or settings
        self._transport = transport
        if not self.is_configured:
            logger.warning(
                "MUV not configured. Set MUV_API_URL, MUV_USERNAME, MUV_PASSWORD "
                "and PRESTADOR_NIT environment variables."
            )

    @property
    def is_configured(self) -> bool:
        return bool(self._config.muv_configured and self._config.prestador_nit)

    def configuration_status(self) -> Dict[str, Any]:
        c = self._config
        return {
            "configurado": self.is_configured,
            "detalles": {
                "MUV_API_URL": bool(c.muv_api_url),
                "MUV_USERNAME": bool(c.muv_username),
                "MUV_PASSWORD": bool(c.muv_password),
                "PRESTADOR_NIT": bool(c.prestador_nit),
                "PRESTADOR_CODIGO": bool(c.prestador_codigo),
            },
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.muv_api_url or "",
            timeout=self._config.http_timeout_seconds,
            transport=self._transport,
        )

    async def _get_token(self, client: httpx.AsyncClient) -> Optional[str]:
        response = await client.post(
            "/auth/token",
            json={
                "username": self._config.muv_username,
                "password": self._config.muv_password,
                "nit": self._config.prestador_nit,
            },
        )
        if response.status_code != 200:
            logger.error(f"MUV token request failed: {response.status_code} - {response.text}")
            return None
        return response.json().get("token")

    async def submit_rips(self, rips: Dict[str, Any], fev_xml: Optional[str] = None) -> MUVResult:
        """Send RIPS (and optionally the FEV XML) for validation."""
        if not self.is_configured:
            return MUVResult(
                success=False,
                mensaje="Configuración MUV incompleta. Verifique variables de entorno.",
                errores=["Faltan credenciales MUV_USERNAME, MUV_PASSWORD o PRESTADOR_NIT"],
            )

        payload: Dict[str, Any] = {
            "nitPrestador": self._config.prestador_nit,
            "codigoPrestador": self._config.prestador_codigo,
            "ripsJson": rips,
        }
        if fev_xml:
            payload["fevXml"] = fev_xml

        try:
            async with self._client() as client:
                token = await self._get_token(client)
                if not token:
                    return MUVResult(
                        success=False,
                        mensaje="No se pudo autenticar con el MUV",
                        errores=["Error de autenticación"],
                    )
                response = await client.post(
                    "/validacion/rips",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"MUV submission error: {e}")
            return MUVResult(
                success=False,
                mensaje="Error de conexión con el MUV",
                errores=[str(e)],
                estado="ERROR",
            )

        if response.is_success and data.get("cuv"):
            logger.info(f"RIPS {rips.get('numFactura')} validated, CUV {data['cuv']}")
            return MUVResult(
                success=True,
                mensaje="RIPS validados exitosamente",
                cuv=data["cuv"],
                estado="VALIDADO",
                fecha_validacion=data.get("fechaValidacion")
                or datetime.now(timezone.utc).isoformat(),
            )

        message = data.get("mensaje") or "Error en validación"
        logger.warning(f"RIPS {rips.get('numFactura')} rejected by MUV: {message}")
        return MUVResult(
            success=False,
            mensaje=message,
            errores=data.get("errores") or [data.get("mensaje") or "Error desconocido"],
            estado="RECHAZADO",
        )

    async def query_cuv(self, cuv: str) -> MUVResult:
        """Look up the validation status of a CUV."""
        try:
            async with self._client() as client:
                token = await self._get_token(client)
                if not token:
                    return MUVResult(success=False, mensaje="No se pudo autenticar con el MUV")
                response = await client.get(
                    f"/validacion/estado/{cuv}",
                    headers={"Authorization": f"Bearer {token}"},
                )
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"MUV status query error for {cuv}: {e}")
            return MUVResult(success=False, mensaje="Error de conexión", errores=[str(e)])

        return MUVResult(
            success=response.is_success,
            mensaje=data.get("mensaje") or "",
            cuv=cuv,
            estado=data.get("estado"),
            fecha_validacion=data.get("fechaValidacion"),
        )


def get_muv_client() -> MUVClient:
    return MUVClient()


def record_submission(
    db: Session,
    organization_id: int,
    user_id: Optional[int],
    rips: Dict[str, Any],
    result: MUVResult,
) -> None:
    """Keep every submission in the audit log under the ``muv_validation`` entity."""
    log_action(
        db,
        organization_id,
        CREATE if result.success else UPDATE,
        MUV_ENTITY,
        entity_id=result.cuv or f"pending-{int(datetime.now(timezone.utc).timestamp())}",
        user_id=user_id,
        new_values={
            "cuv": result.cuv,
            "estado": result.estado,
            "mensaje": result.mensaje,
            "errores": result.errores,
            "fechaValidacion": result.fecha_validacion,
            "numFactura": rips.get("numFactura"),
            "totalUsuarios": len(rips.get("usuarios") or []),
            "totalMedicamentos": len(rips.get("medicamentos") or []),
        },
    )
    db.commit()
