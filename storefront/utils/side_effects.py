# storefront/utils/side_effects.py
from ..extensions import db
from .logger import log


def run_best_effort(name, fn, *args, **kwargs):
    """
    Run a non-critical write after the primary commit.

    Failures are rolled back and logged with their traceback; they are never
    raised to the caller, so a committed order/cancellation stays reported as
    successful. Returns fn's result, or None when it failed.
    """
    try:
        return fn(*args, **kwargs)
    except Exception:
        db.session.rollback()
        log.opt(exception=True).error("side effect '{}' failed", name)
        return None
