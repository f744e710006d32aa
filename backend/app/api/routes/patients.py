"""Patient routes, including the ADRES affiliation lookup."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_

from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser, RequireOperator
from app.core.responses import list_response
from app.db.session import DbSession
from app.models.delivery import Delivery
from app.models.patient import EPS, Patient, PatientContract
from app.models.pending_item import PendingItem
from app.models.prescription import Prescription
from app.schemas.patient import PatientCreate, PatientResponse
from app.services.adres_service import ADRESClient, get_adres_client
from app.services.audit_service import CREATE, client_ip, log_action

logger = logging.getLogger(__name__)

router = APIRouter()


def _patient_dict(patient: Patient) -> dict:
    return PatientResponse.model_validate(patient).model_dump(mode="json")


def _contract_dict(contract: PatientContract) -> dict:
    return {
        "id": contract.id,
        "eps_id": contract.eps_id,
        "eps_code": contract.eps.code,
        "eps_name": contract.eps.name,
        "affiliation_type": contract.affiliation_type,
        "regime": contract.regime,
        "start_date": contract.start_date.isoformat() if contract.start_date else None,
        "is_active": contract.is_active,
    }


@router.get("/lookup")
@limiter.limit("30/minute")
async def lookup_patient(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    adres: Annotated[ADRESClient, Depends(get_adres_client)],
    document_number: str = Query(..., min_length=1),
    document_type: str = "CC",
    check_adres: bool = False,
):
    """Find a patient locally; optionally fall back to ADRES."""
    document_type = document_type.upper()
    patient = (
        db.query(Patient)
        .filter(
            Patient.organization_id == current_user.organization_id,
            Patient.document_type == document_type,
            Patient.document_number == document_number,
        )
        .first()
    )
    if patient:
        return {
            "found": True,
            "source": "local",
            "patient": {**_patient_dict(patient), "contracts": [_contract_dict(c) for c in patient.contracts]},
            "affiliation": None,
        }

    if not check_adres:
        return {"found": False, "source": "local", "patient": None, "affiliation": None}

    affiliation = await adres.verify_affiliation(document_type, document_number)
    return {
        "found": affiliation.estado != "NO_ENCONTRADO",
        "source": "adres",
        "patient": None,
        "affiliation": affiliation.to_dict(),
    }


@router.get("/")
@limiter.limit("60/minute")
def list_patients(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    search: Optional[str] = None,
    limit: int = 50,
):
    query = db.query(Patient).filter(Patient.organization_id == current_user.organization_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Patient.name.ilike(pattern), Patient.document_number.ilike(pattern)))
    total = query.count()
    patients = query.order_by(Patient.name).limit(min(limit, 200)).all()
    return list_response([_patient_dict(p) for p in patients], total)


@router.get("/{patient_id}")
@limiter.limit("60/minute")
def get_patient(request: Request, patient_id: int, db: DbSession, current_user: CurrentUser):
    """Patient with contracts, prescriptions, deliveries and pending items."""
    org_id = current_user.organization_id
    patient = (
        db.query(Patient)
        .filter(Patient.id == patient_id, Patient.organization_id == org_id)
        .first()
    )
    if not patient:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paciente no encontrado")

    prescriptions = (
        db.query(Prescription)
        .filter(Prescription.organization_id == org_id, Prescription.patient_id == patient.id)
        .order_by(Prescription.prescription_date.desc())
        .all()
    )
    deliveries = (
        db.query(Delivery)
        .join(Prescription, Delivery.prescription_id == Prescription.id)
        .filter(Delivery.organization_id == org_id, Prescription.patient_id == patient.id)
        .order_by(Delivery.delivery_date.desc())
        .all()
    )
    pending = (
        db.query(PendingItem)
        .filter(PendingItem.organization_id == org_id, PendingItem.patient_id == patient.id)
        .order_by(PendingItem.created_at.desc())
        .all()
    )
    return {
        **_patient_dict(patient),
        "contracts": [_contract_dict(c) for c in patient.contracts],
        "prescriptions": [
            {
                "id": p.id,
                "prescription_number": p.prescription_number,
                "prescription_date": p.prescription_date.isoformat(),
                "status": p.status.value,
                "items": [
                    {"product_id": i.product_id, "quantity": i.quantity, "delivered_qty": i.delivered_qty}
                    for i in p.items
                ],
            }
            for p in prescriptions
        ],
        "deliveries": [
            {
                "id": d.id,
                "delivery_date": d.delivery_date.isoformat(),
                "warehouse_id": d.warehouse_id,
                "status": d.status.value,
                "items_count": len(d.items),
            }
            for d in deliveries
        ],
        "pending_items": [
            {
                "id": p.id,
                "product_id": p.product_id,
                "product_name": p.product.name,
                "pending_qty": p.pending_qty,
                "delivered_qty": p.delivered_qty,
                "status": p.status.value,
            }
            for p in pending
        ],
    }


@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_patient(request: Request, body: PatientCreate, db: DbSession, current_user: RequireOperator):
    org_id = current_user.organization_id
    duplicate = (
        db.query(Patient.id)
        .filter(
            Patient.organization_id == org_id,
            Patient.document_type == body.document_type,
            Patient.document_number == body.document_number,
        )
        .first()
    )
    if duplicate:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="El paciente ya está registrado")

    data = body.model_dump(exclude={"eps_id", "affiliation_type", "regime"})
    patient = Patient(organization_id=org_id, **data)
    if body.eps_id is not None:
        eps = db.query(EPS).filter(EPS.id == body.eps_id, EPS.organization_id == org_id).first()
        if not eps:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="EPS no encontrada")
        patient.contracts.append(
            PatientContract(eps_id=eps.id, affiliation_type=body.affiliation_type, regime=body.regime)
        )
    db.add(patient)
    db.flush()
    log_action(
        db, org_id, CREATE, "patient", patient.id,
        user_id=current_user.user_id,
        new_values={"document_type": patient.document_type, "document_number": patient.document_number},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(patient)
    logger.info(f"Patient {patient.id} registered in organization {org_id}")
    return {**_patient_dict(patient), "contracts": [_contract_dict(c) for c in patient.contracts]}
