"""
Wire models for the line-delimited JSON protocol spoken over stdin/stdout.

Every line is `{"type": ..., "content": ...}`; commands come in on stdin and
exactly one response goes out on stdout per command.
"""

from .models import Command, Response, encode_response, parse_command

__all__ = ["Command", "Response", "encode_response", "parse_command"]
