"""INVIMA drug registry (CUM catalog).

Shared reference data, not owned by any organization. Loaded from the CUM
open-data CSV by ``scripts/import_invima.py``.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import Boolean, Date, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class InvimaDrug(Base, TimestampMixin):
    __tablename__ = "invima_drugs"

    id: Mapped[int] = mapped_column(primary_key=True)
    # expediente-consecutivo
    cum: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    file_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    product_name: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    holder: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sanitary_registration: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    registration_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    issued_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expires_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    commercial_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cum_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, index=True)  # Activo, Inactivo
    active_since: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    inactive_since: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    medical_sample: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    atc: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    atc_description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    route: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    active_ingredient: Mapped[Optional[str]] = mapped_column(String(500), nullable=True, index=True)
    concentration: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit_of_measure: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    quantity: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    dosage_form: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
