"""
BaseService -- abstract base for services that write through a caller's session.

Responsibility:
    Common constructor and session-handling contract.  Services use
    ``session.flush()`` and never ``session.commit()``: the caller (request
    handler, ``session_scope()`` or test) owns the transaction boundary.

    The one sanctioned exception is the SequenceAllocator, whose counter
    increments commit in their own short transactions.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from office_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` on the caller's session.
    """

    def __init__(self, session: Session):
        self.session = session
