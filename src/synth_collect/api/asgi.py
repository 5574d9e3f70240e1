"""ASGI entrypoint for the SynthCollect API."""

from synth_collect.api.app import create_app
from synth_collect.containers import build_container

app = create_app(build_container())
