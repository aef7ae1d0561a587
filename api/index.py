import json
import os
import sys
from typing import Callable

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
API_DIR = os.path.join(BASE_DIR, "apps", "api")
if API_DIR not in sys.path:
    sys.path.append(API_DIR)


def _import_error_app(detail: str) -> Callable:
    async def app(scope, receive, send):
        if scope["type"] != "http":
            return
        body = json.dumps({"detail": detail}).encode("utf-8")
        await send(
            {
                "type": "http.response.start",
                "status": 500,
                "headers": [(b"content-type", b"application/json")],
            }
        )
        await send({"type": "http.response.body", "body": body})

    return app


try:
    from mathsphere.main import app as inner_app
except Exception as exc:  # pragma: no cover
    # Surface import errors in serverless logs instead of a bare crash.
    detail = f"{type(exc).__name__}: {exc}"
    print("MathSphere API import failed", detail)
    app = _import_error_app(detail)
else:
    from fastapi import FastAPI

    app = FastAPI(title="MathSphere API")
    # Served under /api by the hosting platform.
    app.mount("/api", inner_app)
