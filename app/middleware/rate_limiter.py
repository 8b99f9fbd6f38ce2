"""
Rate limiting configuration.

The Limiter instance is created in app/__init__.py with no default limits;
this module applies limits per blueprint and tightens the credential
endpoints, which are the brute-force target.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

CREDENTIAL_LIMIT = "10/minute"
WRITE_LIMIT = "120/minute"

_CREDENTIAL_ENDPOINTS = ("auth_bp.sign_in", "auth_bp.sign_up", "auth_bp.refresh")


def init_rate_limits(app, limiter):
    """
    Apply rate limits (per remote IP):
        - sign-in / sign-up / refresh: 10/minute
        - project, task and support blueprints: 120/minute
        - health check: exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    for endpoint in _CREDENTIAL_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view is not None:
            app.view_functions[endpoint] = limiter.limit(CREDENTIAL_LIMIT)(view)

    for bp_name in ("project_bp", "task_bp", "support_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — credentials: %s, api: %s", CREDENTIAL_LIMIT, WRITE_LIMIT,
    )
