"""
RT-CV API access for the bridge.

Modules:
- credentials: credential validation and Authorization header derivation
- client: authenticated httpx client for the RT-CV endpoints
- reference_cache: in-memory dedup cache of submitted CV reference numbers
- errors: error taxonomy rendered as `error` responses
"""

__all__ = [
    "client",
    "credentials",
    "errors",
    "reference_cache",
]
