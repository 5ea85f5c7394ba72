"""
stdin/stdout bridge between a host process and the RT-CV API.

`handler.main()` emits a `ready` line, then answers one JSON command per
input line until end of input.
"""

from .handler import Session, handle_line, main, new_session, run

__all__ = ["Session", "handle_line", "main", "new_session", "run"]
