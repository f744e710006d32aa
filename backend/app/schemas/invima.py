"""INVIMA catalog schemas."""

from datetime import date
from typing import Optional

from pydantic import BaseModel


class InvimaDrugSummary(BaseModel):
    id: int
    cum: str
    product_name: str
    holder: Optional[str] = None
    sanitary_registration: Optional[str] = None
    registration_status: Optional[str] = None
    cum_status: Optional[str] = None
    atc: Optional[str] = None
    atc_description: Optional[str] = None
    route: Optional[str] = None
    active_ingredient: Optional[str] = None
    concentration: Optional[str] = None
    dosage_form: Optional[str] = None
    unit_of_measure: Optional[str] = None
    quantity: Optional[str] = None
    medical_sample: bool = False
    role_name: Optional[str] = None

    model_config = {"from_attributes": True}


class InvimaDrugResponse(InvimaDrugSummary):
    file_number: Optional[str] = None
    issued_on: Optional[date] = None
    expires_on: Optional[date] = None
    commercial_description: Optional[str] = None
    active_since: Optional[date] = None
    inactive_since: Optional[date] = None
