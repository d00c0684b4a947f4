"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    form the "Q" side of the kernel, loading ledger rows and handing them to
    callers as frozen snapshots.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the domain DTOs they convert to.  MUST NOT import from services/ or outer
    layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, NOT ORM
      model instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session
