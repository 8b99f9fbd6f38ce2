"""
Security headers for API responses.

The workspace only serves JSON, so the policy is locked down: no framing,
no content sniffing, and a CSP that forbids loading anything at all.

Usage:
    from app.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""

API_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}


def init_security_headers(app):
    """Register an after_request hook that adds API_HEADERS to every response."""

    @app.after_request
    def _add_security_headers(response):
        for name, value in API_HEADERS.items():
            response.headers.setdefault(name, value)

        # HSTS only makes sense behind TLS
        if app.config.get("ENFORCE_HTTPS"):
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )

        response.headers.pop("Server", None)
        return response
