"""
RTA Proxy - allow-listed RTA request forwarder

A FastAPI service that checks a caller's pub_id against a hot-reloaded allow
list, relays the request unchanged to the matching upstream RTA endpoint, and
audit-logs every request and exchange.
"""

__version__ = "0.1.0"

from .main import app

__all__ = ["app"]
