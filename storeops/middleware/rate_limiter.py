"""
Rate limiting configuration.

Applies per-blueprint and per-endpoint limits using Flask-Limiter.
The Limiter instance is created in storeops/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from storeops.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

PASSWORD_RESET_LIMIT = "5/minute"
EXPORT_LIMIT = "30/minute"
IMPORT_LIMIT = "10/minute"
WRITE_LIMIT = "120/minute"

# Endpoints that get a stricter limit than their blueprint.
STRICT_ENDPOINTS = {
    "user.reset_password": PASSWORD_RESET_LIMIT,
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Admin password reset:  5/minute
        - Export downloads:      30/minute  (workbook/PDF generation)
        - Excel imports:         10/minute
        - Data blueprints:       120/minute

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for endpoint, limit in STRICT_ENDPOINTS.items():
        view = app.view_functions.get(endpoint)
        if view is not None:
            app.view_functions[endpoint] = limiter.limit(limit)(view)

    bp = app.blueprints.get("export")
    if bp:
        limiter.limit(EXPORT_LIMIT)(bp)

    bp = app.blueprints.get("import")
    if bp:
        limiter.limit(IMPORT_LIMIT)(bp)

    for bp_name in ("workflow", "user", "rbac", "store", "employee",
                    "bonus", "monthly_status", "campaign", "inspection"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    app.logger.info(
        "Rate limiter configured — password reset: %s, export: %s, import: %s, api: %s",
        PASSWORD_RESET_LIMIT, EXPORT_LIMIT, IMPORT_LIMIT, WRITE_LIMIT,
    )
