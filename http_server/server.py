import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse

from .request import Request
from .response import Response

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

# Matches "{name}" placeholders in route paths
_PARAM_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")

HEADER_TIMEOUT = 5.0
BODY_TIMEOUT = 30.0
MAX_BODY_SIZE = 10 * 1024 * 1024

STATUS_MESSAGES = {
    200: 'OK',
    201: 'Created',
    204: 'No Content',
    400: 'Bad Request',
    404: 'Not Found',
    405: 'Method Not Allowed',
    500: 'Internal Server Error',
}


class BadRequest(Exception):
    """The bytes on the wire are not an HTTP request we can serve."""


@dataclass
class Route:
    """A path template such as /users/{user_id} and its handlers by method."""

    template: str
    pattern: re.Pattern
    handlers: Dict[str, Handler] = field(default_factory=dict)

    @classmethod
    def compile(cls, template: str) -> 'Route':
        parts = []
        last = 0
        for match in _PARAM_PATTERN.finditer(template):
            parts.append(re.escape(template[last:match.start()]))
            parts.append(f"(?P<{match.group(1)}>[^/]+)")
            last = match.end()
        parts.append(re.escape(template[last:]))
        return cls(template=template, pattern=re.compile('^' + ''.join(parts) + '$'))

    def match(self, path: str) -> Optional[Dict[str, str]]:
        """Path parameters (percent-decoded) if path fits the template, else None."""
        found = self.pattern.match(path)
        if found is None:
            return None
        return {name: unquote(value) for name, value in found.groupdict().items()}


def _wants_close(request: Request) -> bool:
    connection = request.headers.get('connection', '').lower()
    if request.version == 'HTTP/1.0':
        return connection != 'keep-alive'
    return connection == 'close'


class HTTPServer:
    def __init__(self, host: str = '0.0.0.0', port: int = 8080):
        self.host = host
        self.port = port
        self.routes: List[Route] = []

    def route(self, path: str, methods: Optional[List] = None):
        """Decorator for registering route handlers"""
        methods = methods or ['GET']

        def decorator(handler):
            route = next((r for r in self.routes if r.template == path), None)
            if route is None:
                route = Route.compile(path)
                self.routes.append(route)
            route.handlers.update({method.upper(): handler for method in methods})
            return handler
        return decorator

    def resolve(self, method: str, path: str) -> Tuple[Optional[Handler], Dict[str, str], int]:
        """
        Find the handler for a request.

        Returns:
            (handler, path_params, status); status is 404 or 405 when no
            handler applies.
        """
        status = 404
        for route in self.routes:
            params = route.match(path)
            if params is None:
                continue
            if method in route.handlers:
                return route.handlers[method], params, 200
            status = 405
        return None, {}, status

    async def _read_head(self, reader: asyncio.StreamReader) -> Optional[Tuple[str, str, str, Dict[str, str]]]:
        first = await reader.readline()
        if not first:
            return None

        try:
            method, target, version = first.decode('ascii').strip().split(' ', 2)
        except (UnicodeDecodeError, ValueError) as e:
            raise BadRequest(f"Malformed request line: {first[:80]!r}") from e

        headers = {}
        while True:
            line = await reader.readline()
            if line in (b'\r\n', b'\n', b''):
                break
            name, sep, value = line.decode('latin-1').partition(':')
            if sep:
                headers[name.strip().lower()] = value.strip()

        return method.upper(), target, version, headers

    async def _read_body(self, reader: asyncio.StreamReader, headers: Dict[str, str]) -> bytes:
        try:
            length = int(headers.get('content-length', 0))
        except ValueError as e:
            raise BadRequest("Invalid Content-Length") from e

        if length < 0 or length > MAX_BODY_SIZE:
            raise BadRequest(f"Unacceptable Content-Length {length}")
        if length == 0:
            return b''

        try:
            return await asyncio.wait_for(reader.readexactly(length), timeout=BODY_TIMEOUT)
        except asyncio.IncompleteReadError as e:
            raise BadRequest("Connection closed before the body was complete") from e

    async def parse_request(self, reader: asyncio.StreamReader) -> Optional[Request]:
        """
        Read one request off the connection.

        Returns None when the peer closes or goes idle; raises BadRequest
        for input that is not a usable request.
        """
        try:
            head = await asyncio.wait_for(self._read_head(reader), timeout=HEADER_TIMEOUT)
        except asyncio.TimeoutError:
            return None
        if head is None:
            return None

        method, target, version, headers = head
        body = await self._read_body(reader, headers)

        url = urlparse(target)
        return Request(
            method=method,
            path=url.path,
            headers=headers,
            query_params=parse_qs(url.query),
            body=body,
            version=version,
        )

    def build_response(self, response: Response) -> bytes:
        """Serialize a response, filling in the framing headers."""
        if response.body:
            response.headers.setdefault('content-type', 'text/plain')
        response.headers['content-length'] = str(len(response.body))
        response.headers['connection'] = 'keep-alive'
        response.headers['server'] = 'UserStoreHttp/1.0'

        lines = [f"HTTP/1.1 {response.status} {STATUS_MESSAGES.get(response.status, 'Unknown')}"]
        lines.extend(f"{key}: {value}" for key, value in response.headers.items())
        return ('\r\n'.join(lines) + '\r\n\r\n').encode() + response.body

    async def handle_request(self, request: Request) -> Response:
        """Route request to appropriate handler"""
        handler, params, status = self.resolve(request.method, request.path)
        if handler is None:
            return Response(status=status, body=STATUS_MESSAGES[status].encode())

        request.path_params = params
        try:
            result = await handler(request)
            if not isinstance(result, Response):
                raise TypeError(f"Handler returned {type(result).__name__}, not a Response")
            return result
        except Exception:
            logger.exception(f"Handler error for {request.method} {request.path}")
            return Response(status=500, body=b'Internal Server Error')

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Serve requests from one connection until the peer is done."""
        peer = writer.get_extra_info('peername')

        try:
            while True:
                try:
                    request = await self.parse_request(reader)
                except BadRequest as e:
                    logger.warning(f"Bad request from {peer}: {e}")
                    writer.write(self.build_response(Response(status=400, body=str(e).encode())))
                    await writer.drain()
                    break
                if request is None:
                    break

                started = time.perf_counter()
                logger.debug(f"--> {request.method} {request.path}")

                response = await self.handle_request(request)
                writer.write(self.build_response(response))
                await writer.drain()

                logger.debug(
                    f"<-- {response.status} - {len(response.body)} bytes - "
                    f"{(time.perf_counter() - started) * 1000:.2f}ms"
                )

                if _wants_close(request):
                    break
        except ConnectionResetError:
            pass
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"Connection error from {peer}: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    async def start(self):
        """Start the HTTP server"""
        server = await asyncio.start_server(self.handle_client, self.host, self.port)

        host, port = server.sockets[0].getsockname()[:2]
        logger.info(f'User store HTTP server running on http://{host}:{port}')

        try:
            async with server:
                await server.serve_forever()
        except asyncio.CancelledError:
            logger.info("Server shutdown requested")
        finally:
            await self.shutdown(server)

    async def shutdown(self, server):
        """Gracefully shutdown the server"""
        logger.info("Shutting down server...")
        server.close()
        await server.wait_closed()
        logger.info("Server shutdown complete")
