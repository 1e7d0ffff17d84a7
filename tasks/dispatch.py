import logging

log = logging.getLogger(__name__)


def dispatch_after_commit(task, *args, **kwargs) -> bool:
    """
    Enqueue ``task`` for work that follows an already committed change.

    The change stands whatever happens here, so a broker failure is logged and
    reported as False rather than raised into the request.
    """
    try:
        task.apply_async(args=args, kwargs=kwargs)
        return True
    except Exception:
        log.exception("Could not enqueue %s%r", getattr(task, "name", task), args)
        return False
