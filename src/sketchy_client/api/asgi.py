"""ASGI entrypoint, e.g. ``uvicorn sketchy_client.api.asgi:app``."""

from sketchy_client.api.app import create_app
from sketchy_client.config import Settings
from sketchy_client.containers import build_container

settings = Settings()
app = create_app(build_container(settings))
