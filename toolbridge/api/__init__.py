"""
HTTP API Layer.

Serves one Session over HTTP: /query, /batch-query, /reset, /reinitialize,
/health and /status.
"""

from toolbridge.api.app import create_app

__all__ = ["create_app"]
