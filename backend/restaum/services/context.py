from contextlib import nullcontext

from flask import current_app, has_app_context


def app_context_for(app):
    """Push an app context for background work unless ``app``'s is already active.

    Inline runs (tests) reuse the caller's context and therefore its
    database session.
    """
    if has_app_context() and current_app._get_current_object() is app:
        return nullcontext()
    return app.app_context()
