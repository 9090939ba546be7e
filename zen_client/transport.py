"""
Connect RPC transport for the Zen session client.

This module provides the unary Connect-protocol (JSON) transport on top of
aiohttp, the interceptor chain used to decorate outgoing calls, and the
TransportFactory that derives the authenticated and unauthenticated
transports from the session state.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, Callable, Awaitable, List, Sequence

import aiohttp
from aiohttp import ClientSession, ClientTimeout, ClientError

from zen_shared.exceptions import ConnectError, StatusCode
from zen_shared.models import MethodDescriptor, ServiceDescriptor
from zen_client.session import SessionState

logger = logging.getLogger(__name__)

CONNECT_PROTOCOL_VERSION = "1"
DEFAULT_USER_AGENT = "ZenSessionClient/1.0"


@dataclass
class UnaryRequest:
    """An outgoing unary call as seen by interceptors."""
    url: str
    service: ServiceDescriptor
    method: MethodDescriptor
    message: Dict[str, Any]
    header: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None


@dataclass
class UnaryResponse:
    """A decoded unary response."""
    message: Dict[str, Any]
    header: Dict[str, str] = field(default_factory=dict)


UnaryFunc = Callable[[UnaryRequest], Awaitable[UnaryResponse]]
Interceptor = Callable[[UnaryFunc], UnaryFunc]
TokenResolver = Callable[[], Awaitable[str]]
SessionProvider = Callable[[], Awaitable[ClientSession]]


def authorization_interceptor(token_resolver: TokenResolver) -> Interceptor:
    """
    Build an interceptor that resolves the token on every call.

    The token is resolved per call, never captured at construction, so a
    rotation is observed by the next call without rebuilding the transport.
    """
    def interceptor(next_call: UnaryFunc) -> UnaryFunc:
        async def call(request: UnaryRequest) -> UnaryResponse:
            token = await token_resolver()
            request.header['authorization'] = token
            return await next_call(request)
        return call
    return interceptor


def header_interceptor(headers: Dict[str, str]) -> Interceptor:
    """Build an interceptor that sets fixed headers on every call."""
    def interceptor(next_call: UnaryFunc) -> UnaryFunc:
        async def call(request: UnaryRequest) -> UnaryResponse:
            for key, value in headers.items():
                request.header.setdefault(key.lower(), value)
            return await next_call(request)
        return call
    return interceptor


class ConnectTransport:
    """
    Unary Connect transport bound to one base URL.

    The underlying aiohttp session is obtained from ``session_provider`` on
    each call, so several transports can share one connection pool.
    """

    def __init__(
        self,
        base_url: str,
        session_provider: SessionProvider,
        interceptors: Optional[Sequence[Interceptor]] = None,
        timeout: float = 30.0,
        name: str = "transport"
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.name = name
        self._session_provider = session_provider
        self._interceptors: List[Interceptor] = list(interceptors or [])

        # First interceptor is outermost.
        call: UnaryFunc = self._send
        for interceptor in reversed(self._interceptors):
            call = interceptor(call)
        self._call = call

    @property
    def interceptors(self) -> List[Interceptor]:
        return list(self._interceptors)

    async def unary(
        self,
        service: ServiceDescriptor,
        method: MethodDescriptor,
        message: Dict[str, Any],
        header: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> UnaryResponse:
        """
        Perform a unary call.

        Args:
            service: Service descriptor
            method: Method descriptor
            message: JSON-serializable request message
            header: Extra request headers
            timeout: Per-call total timeout in seconds

        Returns:
            Decoded response

        Raises:
            ConnectError: On any failure
        """
        request = UnaryRequest(
            url=f"{self.base_url}{service.procedure(method)}",
            service=service,
            method=method,
            message=message,
            header={key.lower(): value for key, value in (header or {}).items()},
            timeout=timeout if timeout is not None else self.timeout
        )
        return await self._call(request)

    async def _send(self, request: UnaryRequest) -> UnaryResponse:
        """Put the request on the wire and decode the result."""
        if not self.base_url:
            raise ConnectError("no base URL configured", StatusCode.UNAVAILABLE)

        session = await self._session_provider()

        headers = dict(request.header)
        headers['content-type'] = 'application/json'
        headers['connect-protocol-version'] = CONNECT_PROTOCOL_VERSION

        started = time.monotonic()
        logger.debug(f"{self.name}: calling {request.url}")

        try:
            async with session.post(
                request.url,
                data=json.dumps(request.message),
                headers=headers,
                timeout=ClientTimeout(total=request.timeout)
            ) as response:
                body = await response.read()
                response_header = dict(response.headers)

                if response.status != 200:
                    error = ConnectError.from_response_body(response.status, body, response_header)
                    logger.debug(f"{self.name}: {request.url} failed: {error.message}")
                    raise error

                try:
                    message = json.loads(body.decode('utf-8')) if body else {}
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    raise ConnectError(f"invalid response body: {e}", StatusCode.INTERNAL, cause=e)

                logger.debug(
                    f"{self.name}: {request.url} completed in {time.monotonic() - started:.3f}s"
                )
                return UnaryResponse(message=message, header=response_header)

        except asyncio.TimeoutError as e:
            raise ConnectError(
                f"call to {request.url} timed out after {request.timeout}s",
                StatusCode.DEADLINE_EXCEEDED, cause=e
            )
        except ClientError as e:
            logger.warning(f"{self.name}: network error calling {request.url}: {e}")
            raise ConnectError(str(e) or type(e).__name__, StatusCode.UNAVAILABLE, cause=e)


class TransportFactory:
    """
    Derives the call transports from the session state.

    Two transports are maintained: an authenticated one that injects the
    ``authorization`` header on every call, and an interceptor-free one used
    exclusively by the authentication service (obtaining a token must not
    require a token). Both are cached and rebuilt only when the session
    version or the token resolver changes.
    """

    def __init__(
        self,
        session: SessionState,
        token_resolver: Optional[TokenResolver] = None,
        timeout: float = 30.0,
        interceptors: Optional[Sequence[Interceptor]] = None,
        cookie_file: Optional[str] = None,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        self.session = session
        self.timeout = timeout
        self.cookie_file = Path(cookie_file).expanduser() if cookie_file else None
        self.user_agent = user_agent
        self._extra_interceptors: List[Interceptor] = list(interceptors or [])

        self._token_resolver = token_resolver
        self._resolver_version = 0

        self._http_session: Optional[ClientSession] = None

        self._built_for: Optional[tuple] = None
        self._generation = 0
        self._authenticated: Optional[ConnectTransport] = None
        self._unauthenticated: Optional[ConnectTransport] = None

    @property
    def generation(self) -> int:
        """Counter bumped each time the transports are rebuilt."""
        self._refresh()
        return self._generation

    def set_token_resolver(self, token_resolver: Optional[TokenResolver]) -> None:
        """Set the coroutine function used to resolve the token per call."""
        self._token_resolver = token_resolver
        self._resolver_version += 1

    def authenticated(self) -> ConnectTransport:
        """Transport that injects the authorization header."""
        self._refresh()
        return self._authenticated

    def unauthenticated(self) -> ConnectTransport:
        """Transport without header injection, for the authentication service."""
        self._refresh()
        return self._unauthenticated

    def _refresh(self) -> None:
        key = (self.session.version, self._resolver_version)
        if self._built_for == key:
            return

        url = self.session.url
        auth = authorization_interceptor(self._token_resolver or self._session_token)

        self._authenticated = ConnectTransport(
            url, self._ensure_session,
            interceptors=[auth] + self._extra_interceptors,
            timeout=self.timeout,
            name="authenticated"
        )
        self._unauthenticated = ConnectTransport(
            url, self._ensure_session,
            interceptors=self._extra_interceptors,
            timeout=self.timeout,
            name="unauthenticated"
        )
        self._built_for = key
        self._generation += 1
        logger.debug(f"Transports derived for {url or '<empty>'} (generation {self._generation})")

    async def _session_token(self) -> str:
        return self.session.token

    async def _ensure_session(self) -> ClientSession:
        """Ensure the shared HTTP session is available."""
        if self._http_session is None or self._http_session.closed:
            connector = aiohttp.TCPConnector(
                limit=10,
                limit_per_host=5,
                keepalive_timeout=30
            )
            self._http_session = ClientSession(
                connector=connector,
                cookie_jar=self._load_cookie_jar(),
                timeout=ClientTimeout(total=self.timeout),
                headers={'User-Agent': self.user_agent}
            )
        return self._http_session

    def _load_cookie_jar(self) -> aiohttp.CookieJar:
        jar = aiohttp.CookieJar(unsafe=True)
        if self.cookie_file and self.cookie_file.exists():
            try:
                jar.load(self.cookie_file)
                logger.debug(f"Loaded cookies from {self.cookie_file}")
            except Exception as e:
                logger.warning(f"Failed to load cookies from {self.cookie_file}: {e}")
        return jar

    async def close(self) -> None:
        """Close the shared HTTP session, saving cookies if configured."""
        if self._http_session and not self._http_session.closed:
            if self.cookie_file:
                try:
                    self.cookie_file.parent.mkdir(parents=True, exist_ok=True)
                    self._http_session.cookie_jar.save(self.cookie_file)
                except Exception as e:
                    logger.warning(f"Failed to save cookies to {self.cookie_file}: {e}")
            await self._http_session.close()
        self._http_session = None
