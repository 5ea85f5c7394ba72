from __future__ import annotations

import io
import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TextIO

import httpx
from pydantic import ValidationError

from protocol.models import (
    Command,
    Error,
    GetSecret,
    GetUserSecret,
    GetUsersSecret,
    HasCachedReference,
    Ok,
    Ping,
    Pong,
    Ready,
    Response,
    SendCv,
    SetCachedReference,
    SetCredentials,
    SetShortCachedReference,
    encode_response,
    parse_command,
)
from rtcv.client import RtcvClient
from rtcv.credentials import CredentialStore
from rtcv.errors import RtcvAuthError, RtcvError, RtcvValidationError
from rtcv.reference_cache import SHORT_TTL_SECONDS, ReferenceCache

from .config import BridgeConfig


logger = logging.getLogger(__name__)

READY_MESSAGE = "waiting for credentials"
BACKFILL_DAYS = 30
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


@dataclass
class Session:
    """Everything a command may touch. Owned by the loop, passed to each handler."""

    credentials: CredentialStore
    client: RtcvClient
    cache: ReferenceCache

    @property
    def authenticated(self) -> bool:
        return self.credentials.is_set

    def close(self) -> None:
        self.client.close()


def new_session(
    config: Optional[BridgeConfig] = None,
    *,
    http_client: Optional[httpx.Client] = None,
    clock: Optional[Callable[[], float]] = None,
) -> Session:
    cfg = config or BridgeConfig()
    credentials = CredentialStore()
    client = RtcvClient(credentials, timeout=cfg.http_timeout, client=http_client)
    cache_kwargs: Dict[str, Any] = {"max_entries": cfg.cache_max_entries}
    if clock is not None:
        cache_kwargs["clock"] = clock
    return Session(credentials=credentials, client=client, cache=ReferenceCache(**cache_kwargs))


# --------------- Command handlers ---------------
def _handle_set_credentials(session: Session, command: SetCredentials) -> Response:
    """
    Verify the candidate credentials against the server, then store them.

    Health, key info and the scraper role are all checked with the candidate
    before it replaces anything, so a failed attempt leaves the previous
    credentials (if any) in place.
    """
    derived = session.credentials.derive(command.content)
    try:
        session.client.check_health(credentials=derived)
        key_info = session.client.check_key_info(credentials=derived)
    except RtcvError as exc:
        raise RtcvAuthError(str(exc)) from exc
    if not key_info.has_scraper_role():
        raise RtcvAuthError("provided key does not have scraper role")

    session.credentials.replace(derived)
    logger.info("Credentials set for %s (key id %s)", derived.server_location, derived.api_key_id)
    _backfill_scanned_references(session)
    return Ok()


def _backfill_scanned_references(session: Session) -> None:
    """Mark every reference the server scanned recently. Failures only get logged."""
    try:
        references = session.client.scanned_reference_nrs(days=BACKFILL_DAYS)
    except RtcvError as exc:
        logger.warning("Could not backfill scanned references: %s: %s", type(exc).__name__, exc)
        return
    for ref in references:
        session.cache.insert(ref)
    logger.info("Backfilled %d scanned references", len(references))


def _reference_number(cv: Any) -> str:
    if not isinstance(cv, dict):
        raise RtcvValidationError("cv expected to be an object")
    if "referenceNumber" not in cv:
        raise RtcvValidationError("referenceNumber field does not exist")
    ref = cv["referenceNumber"]
    if not isinstance(ref, str):
        raise RtcvValidationError("referenceNumber must be a string")
    return ref


def _handle_send_cv(session: Session, command: SendCv) -> Response:
    ref = _reference_number(command.content)
    # Fail before touching the cache when there is nobody to send to
    session.credentials.current()

    # Marked before the POST; a failed POST keeps the mark
    session.cache.insert(ref)
    result = session.client.send_cv(command.content)
    return Ok(content=result.success)


def _handle_get_secret(session: Session, command: GetSecret) -> Response:
    query = command.content
    if not query.key:
        raise RtcvValidationError("key is required")
    return Ok(content=session.client.get_secret(query.encryption_key, query.key))


def _handle_get_users_secret(session: Session, command: GetUsersSecret) -> Response:
    query = command.content
    return Ok(content=session.client.get_users_secret(query.encryption_key, query.key))


def _handle_get_user_secret(session: Session, command: GetUserSecret) -> Response:
    query = command.content
    return Ok(content=session.client.get_user_secret(query.encryption_key, query.key))


def _require_reference(reference: str) -> str:
    if not reference:
        raise RtcvValidationError("reference number cannot be an empty string")
    return reference


def _handle_set_cached_reference(session: Session, command: SetCachedReference) -> Response:
    session.cache.insert(_require_reference(command.content))
    return Ok()


def _handle_set_short_cached_reference(session: Session, command: SetShortCachedReference) -> Response:
    session.cache.insert(_require_reference(command.content), ttl=SHORT_TTL_SECONDS)
    return Ok()


def _handle_has_cached_reference(session: Session, command: HasCachedReference) -> Response:
    return Ok(content=session.cache.contains(_require_reference(command.content)))


def _handle_ping(session: Session, command: Ping) -> Response:  # noqa: ARG001
    return Pong()


_HANDLERS: Dict[str, Callable[[Session, Any], Response]] = {
    "set_credentials": _handle_set_credentials,
    "send_cv": _handle_send_cv,
    "get_secret": _handle_get_secret,
    "get_users_secret": _handle_get_users_secret,
    "get_user_secret": _handle_get_user_secret,
    "set_cached_reference": _handle_set_cached_reference,
    "set_short_cached_reference": _handle_set_short_cached_reference,
    "has_cached_reference": _handle_has_cached_reference,
    "ping": _handle_ping,
}


def handle_command(session: Session, command: Command) -> Response:
    """Route a decoded command. Domain failures propagate as RtcvError."""
    return _HANDLERS[command.type](session, command)


def _describe_parse_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def handle_line(session: Session, line: str) -> Response:
    """
    Turn one input line into exactly one response.

    - Undecodable input yields `error` with an "invalid input" message.
    - Any failure while handling yields `error` with the failure message.
    """
    try:
        command = parse_command(line)
    except ValidationError as exc:
        detail = _describe_parse_error(exc)
        logger.info("Rejected input line: %s", detail)
        return Error(content=f"invalid input: {detail}")

    logger.debug("Handling %s", command.type)
    try:
        return handle_command(session, command)
    except RtcvError as exc:
        logger.warning("%s failed: %s: %s", command.type, type(exc).__name__, exc)
        return Error(content=str(exc))
    except Exception as exc:
        logger.exception("Unexpected failure handling %s", command.type)
        return Error(content=f"internal error: {exc}")


# --------------- Protocol loop ---------------
def _emit(stdout: TextIO, response: Response) -> None:
    stdout.write(encode_response(response) + "\n")
    stdout.flush()


def run(
    session: Session,
    stdin: TextIO,
    stdout: TextIO,
    *,
    input_log: Optional[TextIO] = None,
) -> None:
    """
    Serve commands from `stdin` until end of input.

    One line is read, handled and answered before the next one is read.
    Read errors on `stdin` are not caught.
    """
    _emit(stdout, Ready(content=READY_MESSAGE))
    while True:
        line = stdin.readline()
        if not line:
            logger.info("End of input, stopping")
            return
        if input_log is not None:
            input_log.write(line if line.endswith("\n") else line + "\n")
            input_log.flush()
        _emit(stdout, handle_line(session, line.strip()))


def _configure_logging(config: BridgeConfig) -> None:
    # stdout carries the protocol; logs go to stderr or a file
    kwargs: Dict[str, Any] = {
        "level": getattr(logging, config.log_level, logging.WARNING),
        "format": LOG_FORMAT,
        "datefmt": "%Y-%m-%d %H:%M:%S",
    }
    if config.log_file:
        kwargs["filename"] = config.log_file
    else:
        kwargs["stream"] = sys.stderr
    logging.basicConfig(**kwargs)


def _reconfigure_stdio(stdin: TextIO, stdout: TextIO) -> None:
    # Undecodable bytes become U+FFFD so the line fails to parse instead of ending the loop
    if isinstance(stdin, io.TextIOWrapper):
        stdin.reconfigure(encoding="utf-8", errors="replace")
    if isinstance(stdout, io.TextIOWrapper):
        stdout.reconfigure(encoding="utf-8")


def main() -> int:
    """Console entry: `rtcv-bridge` / `python -m bridge`."""
    config = BridgeConfig.from_env()
    _configure_logging(config)

    _reconfigure_stdio(sys.stdin, sys.stdout)

    session = new_session(config)
    input_log = open(config.input_log, "a", encoding="utf-8") if config.input_log else None
    try:
        run(session, sys.stdin, sys.stdout, input_log=input_log)
    finally:
        session.close()
        if input_log is not None:
            input_log.close()
    return 0
