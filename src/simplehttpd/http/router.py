"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler and extracts path parameters.

=============================================================================
ROUTE PATTERNS
=============================================================================

1. EXACT: no capture segments, matched byte-for-byte

   Pattern: /users
   Matches: /users
   Doesn't match: /users/, /Users, /users?page=2

2. TEMPLATED (:param): each ":name" segment captures one path segment

   Pattern: /users/:id
   Matches: /users/123 → {"id": "123"}
            /users/abc → {"id": "abc"}
   Doesn't match: /users, /users/123/posts

=============================================================================
MATCHING ALGORITHM
=============================================================================

Two ordered passes over the table:

    ┌─────────────────────────────────────────────────────────────────┐
    │ PASS 1: EXACT                                                    │
    │   first exact route with same method and identical pattern       │
    │   (a dict lookup, built once when the table is frozen)           │
    ├─────────────────────────────────────────────────────────────────┤
    │ PASS 2: TEMPLATED (only if pass 1 found nothing)                 │
    │   for each templated route with the same method, in order:       │
    │     split pattern and path on "/"                                │
    │     segment counts differ      → reject                          │
    │     ":name" segment            → bind name = path segment        │
    │     literal segment            → must equal path segment         │
    │   first route that survives every segment wins                   │
    └─────────────────────────────────────────────────────────────────┘

So /users/me registered AFTER /users/:id still wins for "/users/me":
priority is by specificity class first, registration order second.

The path is not normalized. A query string stays glued to the last
segment ("/users/7?x=1" binds id = "7?x=1"), and a trailing slash adds an
empty segment.

=============================================================================
BUILD ONCE, READ FOREVER
=============================================================================

Routes are registered on a Router (mutable builder), then frozen into a
RouteTable (immutable). The table is what ServerConfig carries and what
every worker thread reads concurrently, without locks:

    router = Router()

    @router.get("/users/:id")
    def get_user(request, conn):
        conn.respond(HTTPStatus.OK, request.params["id"])

    config = ServerConfig(routes=router.freeze())

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union, TYPE_CHECKING

from .request import IncomingRequest, Method

if TYPE_CHECKING:
    from ..core.connection import Connection


CAPTURE_MARKER = ":"

# A handler receives the request and the open connection, and writes its
# own response. Its return value is ignored.
Handler = Callable[[IncomingRequest, "Connection"], Any]


def _coerce_method(method: Union[Method, str]) -> Method:
    resolved = method if isinstance(method, Method) else Method.parse(str(method).upper())
    if resolved is Method.UNKNOWN:
        raise ValueError(f"Cannot register a route for method {method!r}")
    return resolved


@dataclass(frozen=True)
class Route:
    """
    A registered route.

        Route(
            pattern="/users/:id",     # URL pattern
            method=Method.GET,        # method filter
            handler=get_user,         # called as handler(request, conn)
            name="get_user",          # optional, for url_for()
        )

    Raises ValueError at construction for patterns that could never match
    sensibly: no leading "/", an empty capture name, or a repeated one.
    """

    pattern: str
    method: Method
    handler: Handler
    name: Optional[str] = None

    segments: Tuple[str, ...] = field(init=False, repr=False, compare=False)
    param_names: Tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.pattern.startswith("/"):
            raise ValueError(f"Route pattern must start with '/': {self.pattern!r}")

        object.__setattr__(self, "method", _coerce_method(self.method))

        segments = tuple(self.pattern.split("/"))
        names = []
        for segment in segments:
            if segment.startswith(CAPTURE_MARKER):
                name = segment[len(CAPTURE_MARKER):]
                if not name:
                    raise ValueError(f"Empty capture name in {self.pattern!r}")
                if name in names:
                    raise ValueError(f"Duplicate capture {name!r} in {self.pattern!r}")
                names.append(name)

        object.__setattr__(self, "segments", segments)
        object.__setattr__(self, "param_names", tuple(names))

    @property
    def is_templated(self) -> bool:
        """True if the pattern contains at least one capture segment."""
        return bool(self.param_names)

    def match_segments(self, path_segments: List[str]) -> Optional[Dict[str, str]]:
        """
        Match an already-split path against this route's segments.

        Returns the captured params, or None if any literal segment differs
        or the segment counts are not equal.
        """
        if len(path_segments) != len(self.segments):
            return None

        params: Dict[str, str] = {}
        for expected, actual in zip(self.segments, path_segments):
            if expected.startswith(CAPTURE_MARKER):
                params[expected[len(CAPTURE_MARKER):]] = actual
            elif expected != actual:
                return None
        return params


@dataclass(frozen=True)
class RouteMatch:
    """
    Result of a successful match.

        Pattern: /users/:id
        Path:    /users/123
        Result:  RouteMatch(route=<Route>, params={"id": "123"})
    """
    route: Route
    params: Dict[str, str]


class RouteTable:
    """
    Immutable, ordered collection of routes.

    Safe to share between threads: nothing on it changes after __init__.
    """

    __slots__ = ("_routes", "_exact", "_templated", "_named")

    def __init__(self, routes: Tuple[Route, ...] = ()):
        self._routes: Tuple[Route, ...] = tuple(routes)

        exact: Dict[Tuple[Method, str], Route] = {}
        templated: Dict[Method, List[Route]] = {}
        named: Dict[str, Route] = {}

        for route in self._routes:
            if route.is_templated:
                templated.setdefault(route.method, []).append(route)
            else:
                # setdefault keeps the first registration
                exact.setdefault((route.method, route.pattern), route)
            if route.name:
                named.setdefault(route.name, route)

        self._exact = exact
        self._templated = {m: tuple(rs) for m, rs in templated.items()}
        self._named = named

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def __getitem__(self, index: int) -> Route:
        return self._routes[index]

    def __repr__(self) -> str:
        return f"RouteTable({len(self._routes)} routes)"

    def match(self, method: Method, path: str) -> Optional[RouteMatch]:
        """
        Find the route for method and path.

        Returns:
            RouteMatch, or None when nothing matches.
        """
        route = self._exact.get((method, path))
        if route is not None:
            return RouteMatch(route=route, params={})

        candidates = self._templated.get(method)
        if not candidates:
            return None

        path_segments = path.split("/")
        for route in candidates:
            params = route.match_segments(path_segments)
            if params is not None:
                return RouteMatch(route=route, params=params)

        return None

    def url_for(self, name: str, **params: str) -> Optional[str]:
        """
        Build a path for a named route (reverse routing).

            table.url_for("get_user", id="123")  # "/users/123"

        Returns None for unknown names. Raises KeyError if a capture of the
        route has no value in params.
        """
        route = self._named.get(name)
        if route is None:
            return None

        parts = []
        for segment in route.segments:
            if segment.startswith(CAPTURE_MARKER):
                parts.append(str(params[segment[len(CAPTURE_MARKER):]]))
            else:
                parts.append(segment)
        return "/".join(parts)

    def describe(self) -> List[str]:
        """One "METHOD   /pattern" line per route, in table order."""
        return [f"{route.method.value:8} {route.pattern}" for route in self._routes]


def match_route(table: RouteTable, method: Method, path: str) -> Optional[RouteMatch]:
    """Match a request against a route table. See RouteTable.match."""
    return table.match(method, path)


class Router:
    """
    Route registration builder.

    Collects routes in registration order and produces an immutable
    RouteTable with freeze(). Decorator helpers return the handler
    unchanged, so they can be stacked:

        router = Router()

        @router.get("/")
        def index(request, conn):
            conn.respond(HTTPStatus.OK, "home")

        @router.post("/users")
        @router.put("/users")
        def save_user(request, conn):
            ...
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []

    def add_route(
        self,
        pattern: str,
        handler: Handler,
        method: Union[Method, str] = Method.GET,
        name: Optional[str] = None,
    ) -> Route:
        """
        Register a route.

        Args:
            pattern: URL pattern, e.g. "/users/:id"
            handler: Called as handler(request, conn)
            method: Method member or name
            name: Optional route name for url_for()
        """
        route = Route(
            pattern=self.prefix + pattern,
            method=method,
            handler=handler,
            name=name,
        )
        self._routes.append(route)
        return route

    def include(self, other: "Router") -> None:
        """Append every route registered on another router."""
        self._routes.extend(other._routes)

    def freeze(self) -> RouteTable:
        """Snapshot the registered routes into an immutable RouteTable."""
        return RouteTable(tuple(self._routes))

    # ─────────────────────────────────────────────────────────────────────
    # DECORATORS
    # ─────────────────────────────────────────────────────────────────────

    def route(
        self,
        pattern: str,
        method: Union[Method, str] = Method.GET,
        name: Optional[str] = None,
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(pattern, handler, method, name)
            return handler
        return decorator

    def get(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route(pattern, Method.GET, name)

    def post(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route(pattern, Method.POST, name)

    def put(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route(pattern, Method.PUT, name)

    def delete(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route(pattern, Method.DELETE, name)

    def patch(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route(pattern, Method.PATCH, name)

    def head(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route(pattern, Method.HEAD, name)

    def options(self, pattern: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        return self.route(pattern, Method.OPTIONS, name)
