"""
AWS Lambda entry point for the Prospera FastAPI application.

Exposes a single `handler` compatible with AWS Lambda + API Gateway. The
ASGI lifespan protocol is disabled: the app keeps no startup state and
services are built lazily on the first request.
"""

from mangum import Mangum

from .main import app

# Wrap the FastAPI ASGI app with Mangum to make it Lambda-compatible
handler: Mangum = Mangum(app, lifespan="off")
