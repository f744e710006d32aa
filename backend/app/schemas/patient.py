"""Patient and EPS schemas."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.services.adres_service import DOCUMENT_TYPES


class EPSCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=255)
    nit: Optional[str] = None


class EPSResponse(BaseModel):
    id: int
    code: str
    name: str
    nit: Optional[str] = None
    is_active: bool

    model_config = {"from_attributes": True}


class PatientCreate(BaseModel):
    document_type: str = Field(..., max_length=5)
    document_number: str = Field(..., min_length=1, max_length=30)
    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    birth_date: Optional[date] = None
    sex: Optional[str] = Field(None, pattern="^[MF]$")
    diagnosis: Optional[str] = None
    eps_id: Optional[int] = None
    affiliation_type: str = "COTIZANTE"
    regime: str = "CONTRIBUTIVO"

    @field_validator("document_type")
    @classmethod
    def known_document_type(cls, v: str) -> str:
        v = v.upper()
        if v not in DOCUMENT_TYPES:
            raise ValueError(f"Tipo de documento no soportado: {v}")
        return v


class PatientResponse(BaseModel):
    id: int
    document_type: str
    document_number: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    birth_date: Optional[date] = None
    sex: Optional[str] = None
    diagnosis: Optional[str] = None

    model_config = {"from_attributes": True}
