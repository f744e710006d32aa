"""Patient, EPS and affiliation contract models."""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import Boolean, Date, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, OrganizationScopedMixin, TimestampMixin


class EPS(Base, OrganizationScopedMixin, TimestampMixin):
    """Entidad Promotora de Salud, the insurer that pays for dispensations."""

    __tablename__ = "eps"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_eps_org_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    nit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Patient(Base, OrganizationScopedMixin, TimestampMixin):
    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "document_type", "document_number", name="uq_patient_document"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    document_type: Mapped[str] = mapped_column(String(5), default="CC", nullable=False)
    document_number: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    sex: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)  # M, F
    diagnosis: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # CIE-10

    contracts: Mapped[list["PatientContract"]] = relationship(
        "PatientContract", back_populates="patient", cascade="all, delete-orphan"
    )


class PatientContract(Base, TimestampMixin):
    """Affiliation of a patient to an EPS."""

    __tablename__ = "patient_contracts"

    id: Mapped[int] = mapped_column(primary_key=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    eps_id: Mapped[int] = mapped_column(ForeignKey("eps.id"), nullable=False, index=True)
    affiliation_type: Mapped[str] = mapped_column(String(30), default="COTIZANTE", nullable=False)
    regime: Mapped[str] = mapped_column(String(30), default="CONTRIBUTIVO", nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    patient: Mapped["Patient"] = relationship("Patient", back_populates="contracts")
    eps: Mapped["EPS"] = relationship("EPS")
