"""
rebasepool/api.py

Read-only REST API over a StakingPool.

Serves pool views, account views, the committed event history and
Prometheus metrics over HTTP/1.1 on trio. Pool mutations are not exposed:
every route is a GET and every request is answered then closed.
"""

import json
import logging
import re
import time
import trio
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

if TYPE_CHECKING:
    from .pool import StakingPool

from .config import DEFAULT_API_HOST, DEFAULT_API_PORT
from .metrics import PoolMetricsCollector

logger = logging.getLogger("rebasepool.api")

API_VERSION = "1.0.0"

# Request heads larger than this are rejected
MAX_HEAD_BYTES = 16 * 1024

# Seconds a client gets to send its request head
READ_TIMEOUT = 10

DEFAULT_EVENT_LIMIT = 100

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class BadRequest(Exception):
    """The request head could not be parsed."""


# ============================================================================
# WIRE FORMAT
# ============================================================================

@dataclass
class Request:
    """A parsed request line plus query string; headers and body are ignored."""
    method: str
    path: str
    query: Dict[str, List[str]] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)

    def arg(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.query.get(name)
        return values[0] if values else default


@dataclass
class Reply:
    """Status, payload and content type of an answer."""
    status: int
    body: bytes
    content_type: str = "application/json"

    @classmethod
    def of(cls, data: Any, status: int = 200) -> "Reply":
        return cls(status, json.dumps(data, indent=2).encode("utf-8"))

    @classmethod
    def failure(cls, message: str, status: int = 400) -> "Reply":
        return cls.of({"error": message, "status": status}, status=status)

    @classmethod
    def plain(cls, text: str, content_type: str = "text/plain") -> "Reply":
        return cls(200, text.encode("utf-8"), content_type)

    @property
    def payload(self) -> Any:
        return json.loads(self.body)

    def encode(self) -> bytes:
        try:
            phrase = HTTPStatus(self.status).phrase
        except ValueError:
            phrase = "Unknown"
        head = (
            f"HTTP/1.1 {self.status} {phrase}\r\n"
            f"Content-Type: {self.content_type}\r\n"
            f"Content-Length: {len(self.body)}\r\n"
            f"Server: rebasepool/{API_VERSION}\r\n"
            f"Connection: close\r\n\r\n"
        )
        return head.encode("latin-1") + self.body


def parse_request(head: bytes) -> Request:
    """Parse the request line of an HTTP/1.x head."""
    try:
        line = head.split(b"\r\n", 1)[0].decode("latin-1")
    except UnicodeDecodeError as e:
        raise BadRequest(f"undecodable request line: {e}") from e

    parts = line.split()
    if len(parts) != 3 or not parts[2].startswith("HTTP/1."):
        raise BadRequest(f"malformed request line: {line!r}")

    method, target, _ = parts
    url = urlsplit(target)
    return Request(method=method.upper(), path=url.path or "/", query=parse_qs(url.query))


def compile_route(template: str) -> re.Pattern:
    """Turn '/accounts/{address}' into a regex with one named group per field."""
    pattern = re.sub(r"\{(\w+)\}", r"(?P<\1>[^/]+)", template)
    return re.compile(f"^{pattern}$")


# ============================================================================
# SERVER
# ============================================================================

Handler = Callable[[Request], Reply]


class PoolAPI:
    """
    REST API server for a StakingPool.

    Usage:
        from rebasepool.api import PoolAPI

        api = PoolAPI(pool, host="0.0.0.0", port=8089)
        trio.run(api.start)

        # GET http://localhost:8089/pool
    """

    def __init__(
        self,
        pool: "StakingPool",
        host: str = DEFAULT_API_HOST,
        port: int = DEFAULT_API_PORT,
        enable_metrics: bool = True,
    ):
        """
        Initialize REST API server.

        Args:
            pool: StakingPool to expose
            host: Host to bind to (default: localhost)
            port: Port to listen on
            enable_metrics: Enable Prometheus metrics endpoint
        """
        self.pool = pool
        self.host = host
        self.port = port
        self.enable_metrics = enable_metrics

        self.metrics = PoolMetricsCollector(pool) if enable_metrics else None
        if self.metrics:
            pool.events.subscribe(self.metrics.record_event)

        self._start_time = time.time()
        self._cancel_scope: Optional[trio.CancelScope] = None

        self._routes: List[Tuple[str, str, re.Pattern, Handler]] = []
        for template, handler in [
            ("/", self.root),
            ("/health", self.health),
            ("/pool", self.pool_view),
            ("/accounts", self.accounts),
            ("/accounts/{address}", self.account),
            ("/events", self.events),
            ("/metrics", self.prometheus),
        ]:
            self._routes.append(("GET", template, compile_route(template), handler))

    @property
    def running(self) -> bool:
        return self._cancel_scope is not None

    async def start(self) -> None:
        """Serve until stop() is called."""
        if self.running:
            logger.warning("API server already running")
            return

        logger.info(f"Starting REST API server on {self.host}:{self.port}")
        with trio.CancelScope() as scope:
            self._cancel_scope = scope
            try:
                await trio.serve_tcp(self._serve_client, self.port, host=self.host)
            finally:
                self._cancel_scope = None
        logger.info("REST API server stopped")

    async def stop(self) -> None:
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()

    async def _serve_client(self, stream: trio.abc.Stream) -> None:
        """Answer one request on stream, then close it."""
        async with stream:
            try:
                head = await self._receive_head(stream)
                if head is None:
                    return
                reply = self.dispatch(parse_request(head))
            except BadRequest as e:
                logger.debug(f"Bad request: {e}")
                reply = Reply.failure(str(e), 400)

            try:
                await stream.send_all(reply.encode())
            except trio.BrokenResourceError:
                logger.debug("Client went away before the reply was sent")

    async def _receive_head(self, stream: trio.abc.Stream) -> Optional[bytes]:
        buffer = bytearray()
        with trio.move_on_after(READ_TIMEOUT) as timeout:
            while b"\r\n\r\n" not in buffer:
                if len(buffer) > MAX_HEAD_BYTES:
                    raise BadRequest("request head too large")
                chunk = await stream.receive_some(4096)
                if not chunk:
                    return None
                buffer += chunk
        if timeout.cancelled_caught:
            raise BadRequest("timed out reading request")
        return bytes(buffer[:buffer.index(b"\r\n\r\n")])

    def dispatch(self, request: Request) -> Reply:
        """Route a request to its handler; failures become JSON errors."""
        allowed = False
        for method, _, pattern, handler in self._routes:
            match = pattern.match(request.path)
            if not match:
                continue
            if method != request.method:
                allowed = True
                continue
            request.params = {k: unquote(v) for k, v in match.groupdict().items()}
            try:
                return handler(request)
            except ValueError as e:
                return Reply.failure(str(e), 400)
            except Exception as e:
                logger.error(f"Error handling {request.method} {request.path}: {e}")
                return Reply.failure("internal error", 500)

        if allowed:
            return Reply.failure(f"{request.method} not allowed", 405)
        return Reply.failure(f"no route for {request.path}", 404)

    # ========================================================================
    # ROUTES
    # ========================================================================

    def root(self, request: Request) -> Reply:
        return Reply.of({
            "name": "rebasepool",
            "version": API_VERSION,
            "pool": self.pool.address,
            "endpoints": [f"{method} {template}" for method, template, _, _ in self._routes],
        })

    def outstanding_rewards(self) -> int:
        """Reward the pool still owes: accrued but unclaimed, plus what the period will emit."""
        pool = self.pool
        unclaimed = sum(pool.earned(account) for account in pool.accounts())
        remaining = pool.reward_rate * max(0, pool.period_finish - pool.last_time_reward_applicable())
        return unclaimed + remaining

    def health(self, request: Request) -> Reply:
        """Healthy while the reward balance covers everything still owed."""
        owed = self.outstanding_rewards()
        held = self.pool.reward_token.balance_of(self.pool.address)
        funded = held >= owed
        return Reply.of({
            "status": "healthy" if funded else "underfunded",
            "guard": self.pool.guard.value,
            "reward_balance": held,
            "outstanding_rewards": owed,
            "uptime_seconds": time.time() - self._start_time,
        }, status=200 if funded else 503)

    def pool_view(self, request: Request) -> Reply:
        return Reply.of(self.pool.snapshot())

    def accounts(self, request: Request) -> Reply:
        infos = [self.pool.account_info(a) for a in self.pool.accounts()]
        return Reply.of({"count": len(infos), "accounts": infos})

    def account(self, request: Request) -> Reply:
        return Reply.of(self.pool.account_info(request.params["address"]))

    def events(self, request: Request) -> Reply:
        limit_arg = request.arg("limit", str(DEFAULT_EVENT_LIMIT))
        try:
            limit = max(0, int(limit_arg))
        except ValueError:
            raise ValueError(f"limit must be an integer, got {limit_arg!r}") from None

        matches = self.pool.events.filter(name=request.arg("name"), account=request.arg("account"))
        selected = matches[-limit:] if limit else []
        return Reply.of({"count": len(selected), "events": [e.to_dict() for e in selected]})

    def prometheus(self, request: Request) -> Reply:
        if not self.metrics:
            return Reply.failure("metrics not enabled", 404)
        return Reply.plain(self.metrics.collect(), content_type=PROMETHEUS_CONTENT_TYPE)
