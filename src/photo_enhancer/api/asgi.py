"""ASGI entrypoint for the photo enhancer API."""

from photo_enhancer.api.app import create_app
from photo_enhancer.containers import build_container

app = create_app(build_container())
