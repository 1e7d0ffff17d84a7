from contextlib import contextmanager

from models import db


@contextmanager
def atomic():
    """
    Run the enclosed block as one database transaction.

    Commits on success; on any exception the session is rolled back before the
    exception propagates, so a failed capacity operation never leaves partial
    writes behind.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
