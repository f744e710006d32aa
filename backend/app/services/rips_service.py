"""RIPS JSON generation and structural validation (Resolución 2275 de 2023).

Demographic fields the system does not capture are filled with the
ministry's generic codes.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.models.delivery import Delivery, DeliveryItem, DeliveryStatus
from app.models.prescription import Prescription

logger = logging.getLogger(__name__)

DEFAULT_DIAGNOSIS = "Z000"
DEFAULT_BIRTH_DATE = "1990-01-01"
COLOMBIA = "170"
BOGOTA = "11001"


def period_bounds(start: date, end: date) -> tuple:
    """Datetimes covering the start of ``start`` through the end of ``end``."""
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, time.max, tzinfo=timezone.utc),
    )


def deliveries_in_period(
    db: Session,
    organization_id: int,
    start: date,
    end: date,
    warehouse_id: Optional[int] = None,
) -> List[Delivery]:
    """Completed deliveries of the period with items, patient and EPS loaded, oldest first."""
    start_dt, end_dt = period_bounds(start, end)
    query = (
        db.query(Delivery)
        .options(
            selectinload(Delivery.items).selectinload(DeliveryItem.product),
            selectinload(Delivery.warehouse),
            selectinload(Delivery.prescription).selectinload(Prescription.patient),
            selectinload(Delivery.prescription).selectinload(Prescription.eps),
        )
        .filter(
            Delivery.organization_id == organization_id,
            Delivery.status == DeliveryStatus.COMPLETED,
            Delivery.delivery_date >= start_dt,
            Delivery.delivery_date <= end_dt,
        )
    )
    if warehouse_id is not None:
        query = query.filter(Delivery.warehouse_id == warehouse_id)
    return query.order_by(Delivery.delivery_date, Delivery.id).all()


def invoice_number(start: date, end: date) -> str:
    return f"FAC-{start.strftime('%Y%m%d')}-{end.strftime('%Y%m%d')}"


def build_usuarios(deliveries: List[Delivery]) -> List[Dict[str, Any]]:
    """One entry per patient, numbered in order of first appearance."""
    usuarios: Dict[str, Dict[str, Any]] = {}
    for delivery in deliveries:
        patient = delivery.prescription.patient if delivery.prescription else None
        if patient is None:
            continue
        key = f"{patient.document_type}:{patient.document_number}"
        if key in usuarios:
            continue
        usuarios[key] = {
            "tipoDocumentoIdentificacion": patient.document_type or "CC",
            "numDocumentoIdentificacion": patient.document_number,
            "tipoUsuario": "01",
            "fechaNacimiento": (
                patient.birth_date.isoformat() if patient.birth_date else DEFAULT_BIRTH_DATE
            ),
            "codSexo": "03",
            "codPaisResidencia": COLOMBIA,
            "codMunicipioResidencia": BOGOTA,
            "codZonaTerritorialResidencia": "01",
            "incapacidad": "NO",
            "consecutivo": len(usuarios) + 1,
            "codPaisOrigen": COLOMBIA,
        }
    return list(usuarios.values())


def build_medicamentos(deliveries: List[Delivery]) -> List[Dict[str, Any]]:
    """One entry per delivered item."""
    medicamentos: List[Dict[str, Any]] = []
    for delivery in deliveries:
        prescription = delivery.prescription
        patient = prescription.patient if prescription else None
        if patient is None:
            continue
        diagnosis = prescription.diagnosis_code or patient.diagnosis or DEFAULT_DIAGNOSIS
        for item in delivery.items:
            product = item.product
            unit_cost = float(item.unit_cost or 0)
            medicamentos.append({
                "codPrestador": settings.prestador_codigo,
                "numAutorizacion": prescription.mipres_code or "",
                "fechaDispensAdmon": delivery.delivery_date.date().isoformat(),
                "codDiagnosticoPrincipal": diagnosis,
                "codDiagnosticoRelacionado": "",
                "tipoMedicamento": "01",
                "codMedicamento": product.code if product else "",
                "nombreMedicamento": product.name if product else "",
                "formaFarmaceutica": "99",
                "concentracionMedicamento": (product.concentration if product else None) or "",
                "unidadMedida": (product.unit if product else None) or "UNIDAD",
                "numUnidades": item.quantity,
                "diasTratamiento": 30,
                "tipoDocumentoIdentificacion": patient.document_type or "CC",
                "numDocumentoIdentificacion": patient.document_number,
                "vrUnitMedicamento": unit_cost,
                "vrServicio": round(item.quantity * unit_cost, 2),
                "conceptoRecaudo": "05",
                "valorPagoModerador": float(delivery.moderator_fee or 0),
                "numFEVPagoModerador": "",
                "consecutivo": len(medicamentos) + 1,
            })
    return medicamentos


def build_rips(deliveries: List[Delivery], start: date, end: date) -> Dict[str, Any]:
    return {
        "numDocumentoIdObligado": settings.prestador_nit,
        "numFactura": invoice_number(start, end),
        "tipoNota": None,
        "numNota": None,
        "usuarios": build_usuarios(deliveries),
        "medicamentos": build_medicamentos(deliveries),
    }


def validate_rips_structure(rips: Any) -> List[str]:
    """Check the mandatory RIPS fields. Returns Spanish error messages, empty when valid."""
    errors: List[str] = []
    if not isinstance(rips, dict):
        return ["RIPS debe ser un objeto JSON"]

    if not rips.get("numDocumentoIdObligado"):
        errors.append("Falta numDocumentoIdObligado (NIT del prestador)")
    if not rips.get("numFactura"):
        errors.append("Falta numFactura")

    usuarios = rips.get("usuarios")
    if not isinstance(usuarios, list):
        errors.append("Falta array de usuarios")
    else:
        for i, usuario in enumerate(usuarios, start=1):
            if not isinstance(usuario, dict):
                errors.append(f"Usuario {i}: formato inválido")
                continue
            if not usuario.get("tipoDocumentoIdentificacion"):
                errors.append(f"Usuario {i}: falta tipoDocumentoIdentificacion")
            if not usuario.get("numDocumentoIdentificacion"):
                errors.append(f"Usuario {i}: falta numDocumentoIdentificacion")

    medicamentos = rips.get("medicamentos")
    if not isinstance(medicamentos, list):
        errors.append("Falta array de medicamentos")
    else:
        for i, med in enumerate(medicamentos, start=1):
            if not isinstance(med, dict):
                errors.append(f"Medicamento {i}: formato inválido")
                continue
            if not med.get("codMedicamento"):
                errors.append(f"Medicamento {i}: falta codMedicamento")
            units = med.get("numUnidades")
            if not isinstance(units, (int, float)) or units <= 0:
                errors.append(f"Medicamento {i}: numUnidades debe ser mayor a 0")

    return errors
