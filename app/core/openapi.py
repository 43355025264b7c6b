"""OpenAPI customization for rate limited endpoints.

Enriches the generated schema with:
- An optional API key security scheme for the rate limit token header
- A documented 429 response on every operation the limiter applies to
- Tags metadata

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.core.config import RateLimitSettings, parse_exempt_paths
from app.core.rate_limit import RATE_LIMIT_EXCEEDED_MESSAGE

_TAGS = [
    {"name": "Probe", "description": "Endpoints used to exercise the rate limiter."},
    {"name": "Health", "description": "Liveness and readiness checks."},
]


def apply_openapi_customizations(app: FastAPI, rate_limit: RateLimitSettings) -> None:
    """Patch FastAPI's OpenAPI generation to document rate limiting.

    Args:
        app: Application whose schema is patched.
        rate_limit: Settings providing the token header and exempt paths.
    """

    original_openapi = app.openapi
    exempt = parse_exempt_paths(rate_limit.exempt_paths)

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {}).setdefault(
            "RateLimitToken",
            {
                "type": "apiKey",
                "in": "header",
                "name": rate_limit.token_header,
                "description": (
                    "Optional token. Known tokens get their own budget; "
                    "otherwise requests are limited per client IP."
                ),
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(t for t in _TAGS if t["name"] not in existing_tag_names)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path in exempt:
                    method_obj["security"] = []
                    continue
                method_obj["security"] = [{}, {"RateLimitToken": []}]
                method_obj.setdefault("responses", {})["429"] = {
                    "description": "Too Many Requests",
                    "content": {"text/plain": {"example": RATE_LIMIT_EXCEEDED_MESSAGE}},
                }

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
