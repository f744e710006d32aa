"""Domain errors raised by services and their mapping to HTTP responses."""

from contextlib import contextmanager

from fastapi import HTTPException, status
from sqlalchemy.orm import Session


class InsufficientStockError(ValueError):
    """A lot or warehouse does not hold the requested quantity."""

    def __init__(self, label: str, available: int, requested: int):
        self.label = label
        self.available = available
        self.requested = requested
        super().__init__(
            f"Stock insuficiente para {label}. Disponible: {available}, solicitado: {requested}"
        )


class InvalidTransitionError(ValueError):
    """A status change is not allowed from the current status."""


class NotFoundError(LookupError):
    """A referenced row does not exist in the caller's organization."""


@contextmanager
def service_errors(db: Session):
    """Roll back and map domain errors: NotFoundError -> 404, ValueError -> 400."""
    try:
        yield
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
