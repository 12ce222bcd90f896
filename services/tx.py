from contextlib import contextmanager


@contextmanager
def transaction(session):
    """
    Commit on success, roll back everything on any error.

    There is no partial outcome: a slot lock without its booking row, or a
    terminated booking whose slot was never released, cannot be committed.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
