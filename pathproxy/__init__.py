"""
pathproxy

Embeddable reverse proxy that forwards each request to a backend chosen by
its exact path, falling back to a default backend.

Modules:
- proxy: route table, forwarding handler and catch-all FastAPI route
- config: Pydantic Settings for the packaged service
- main: FastAPI application factory
"""

__version__ = "1.0.0"
