"""
Transaction helper for multi-row workflows.
Everything inside the block commits together or not at all.
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import Conflict, InternalFailure, StaffShieldError
from ..logging import get_logger


log = get_logger(__name__)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    try:
        yield db
        db.commit()
    except StaffShieldError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        log.warning("integrity_error", error=str(e.orig))
        raise Conflict("Duplicate or conflicting record") from e
    except SQLAlchemyError as e:
        db.rollback()
        log.exception("persistence_failure")
        raise InternalFailure() from e
    except Exception:
        db.rollback()
        raise
