"""
BaseService -- abstract base for services that write through a session.

Responsibility:
    Provides the common constructor and session-handling contract: services
    receive a SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries belong to the caller (``session_scope()`` or the
    test harness).  Services flush and never commit or roll back.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for session-bound services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
