"""
BaseService -- abstract base for the kernel's write-side stores.

Services receive a SQLAlchemy ``Session`` from the caller and use
``session.flush()`` within the caller's transaction -- never
``session.commit()`` or ``session.rollback()``.  The MovementCoordinator
owns every transaction boundary.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never commits or rolls back; the caller controls
          transaction boundaries so that the ledger insert and the balance
          write are atomic.
    """

    def __init__(self, session: Session):
        self.session = session
