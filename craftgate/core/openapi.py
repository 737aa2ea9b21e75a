"""OpenAPI customization: API key security scheme and tag metadata."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {
        "name": "Images",
        "description": "Image generation quota: inspect it or claim one generation.",
    },
    {
        "name": "Health",
        "description": "Liveness checks.",
    },
]

# Paths reachable without X-API-Key
PUBLIC_PATH_SUFFIXES = ("/health",)


def apply_openapi_customizations(app: FastAPI) -> None:
    """Wrap ``app.openapi`` so the schema documents API key auth.

    Every operation requires ``X-API-Key`` except the public paths, which
    get ``security: []``. Extra identity headers are documented on the
    scheme description.
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": (
                    "Service API key. Forward the end user's id in X-User-Id; "
                    "anonymous callers are throttled by client IP."
                ),
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        known = {t.get("name") for t in tags}
        tags.extend(tag for tag in TAGS_METADATA if tag["name"] not in known)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith(PUBLIC_PATH_SUFFIXES):
                for operation in methods.values():
                    if isinstance(operation, dict):
                        operation["security"] = []

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
