"""Route sets owned by engines.

A `RouteSet` is an ASGI app built from Starlette route objects. Mounted apps
may answer 404 with an ``x-cascade: pass`` header, in which case dispatch
moves on to the following routes and finally to the route set's default
handler.
"""

import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from fastapi import FastAPI
from fastapi.routing import APIRoute
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.routing import BaseRoute, Match, Mount, NoMatchFound, Route, WebSocketRoute
from starlette.types import ASGIApp, Receive, Scope, Send

from .core.http import cascade_not_found, is_cascade_pass, route_path, to_response
from .core.validation import validate_mount_path
from .naming import singularize


logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@dataclass
class MountPoint:
    app: Any
    prefix: str
    name: Optional[str]
    route: Mount

    @property
    def is_engine(self) -> bool:
        return hasattr(self.app, "routes") and hasattr(self.app, "engine_name")


def _wrap_endpoint(func: Callable) -> Callable:
    @functools.wraps(func)
    async def endpoint(request: Request):
        if asyncio.iscoroutinefunction(func):
            result = await func(request)
        else:
            result = await run_in_threadpool(func, request)
        return to_response(result)

    return endpoint


class RouteSet:
    def __init__(self, owner: Any = None, default: Optional[ASGIApp] = None):
        self.owner = owner
        self.default = default or cascade_not_found
        self.routes: List[BaseRoute] = []
        self.named_routes: Dict[str, BaseRoute] = {}
        self.mounts: List[MountPoint] = []
        self._draw_blocks: List[Callable[["RouteSet"], Any]] = []
        self._route_files: List[Path] = []
        self._api: Optional[FastAPI] = None
        self._api_mount: Optional[Mount] = None

    def __iter__(self) -> Iterator[BaseRoute]:
        return iter(self.routes)

    def __len__(self) -> int:
        return len(self.routes)

    def __repr__(self) -> str:
        owner = getattr(self.owner, "engine_name", None)
        return f"<RouteSet {owner} routes={len(self.routes)}>"

    # -- drawing -----------------------------------------------------------

    def draw(self, block: Callable[["RouteSet"], Any]) -> Callable[["RouteSet"], Any]:
        self._draw_blocks.append(block)
        block(self)
        return block

    def load(self, path: Path) -> None:
        from .services.scripts import run_script

        path = Path(path)
        if path not in self._route_files:
            self._route_files.append(path)
        run_script(path, routes=self, engine=self.owner, app=getattr(self.owner, "application", None))

    def clear(self) -> None:
        self.routes = []
        self.named_routes = {}
        self.mounts = []
        self._api = None
        self._api_mount = None

    def reload(self) -> None:
        """Redraw from the recorded draw blocks and routes files."""
        self.clear()
        for block in self._draw_blocks:
            block(self)
        for path in self._route_files:
            if path.is_file():
                self.load(path)
            else:
                logger.warning(f"Routes file {path} disappeared, skipping")

    def _add(self, route: BaseRoute, name: Optional[str]) -> BaseRoute:
        self.routes.append(route)
        if name and name not in self.named_routes:
            self.named_routes[name] = route
        return route

    def _endpoint(self, to: Any) -> Any:
        if isinstance(to, str):
            from .controller import ControllerAction

            controller, _, action = to.partition("#")
            if not controller or not action:
                raise ValueError(f"Endpoint string must look like 'controller#action', got {to!r}")
            return ControllerAction(self, controller, action)
        if inspect.isfunction(to) or inspect.ismethod(to):
            return _wrap_endpoint(to)
        if callable(to):
            return to
        raise TypeError(f"Route endpoint must be callable or 'controller#action', got {to!r}")

    def match(self, path: str, to: Any, *, name: Optional[str] = None, methods: Optional[Sequence[str]] = None) -> BaseRoute:
        endpoint = self._endpoint(to)
        if methods is None:
            methods = ALL_METHODS if inspect.isfunction(endpoint) else None
        route = Route(path, endpoint=endpoint, methods=methods, name=name)
        return self._add(route, name)

    def get(self, path: str, to: Any, *, name: Optional[str] = None) -> BaseRoute:
        return self.match(path, to, name=name, methods=["GET"])

    def post(self, path: str, to: Any, *, name: Optional[str] = None) -> BaseRoute:
        return self.match(path, to, name=name, methods=["POST"])

    def put(self, path: str, to: Any, *, name: Optional[str] = None) -> BaseRoute:
        return self.match(path, to, name=name, methods=["PUT"])

    def patch(self, path: str, to: Any, *, name: Optional[str] = None) -> BaseRoute:
        return self.match(path, to, name=name, methods=["PATCH"])

    def delete(self, path: str, to: Any, *, name: Optional[str] = None) -> BaseRoute:
        return self.match(path, to, name=name, methods=["DELETE"])

    def api(self, path: str, endpoint: Callable, *, name: Optional[str] = None, methods: Optional[Sequence[str]] = None, **kwargs: Any) -> BaseRoute:
        """Add a FastAPI route (dependency injection, response models).

        API routes live in one FastAPI app mounted at the position of the
        first `api()` call; unmatched paths cascade on to later routes.
        """
        if self._api is None:
            self._api = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
            self._api.router.default = cascade_not_found
            self._api_mount = Mount("", app=self._api)
            self.routes.append(self._api_mount)
        self._api.add_api_route(path, endpoint, methods=list(methods or ["GET"]), name=name, **kwargs)
        route = self._api.router.routes[-1]
        if name and name not in self.named_routes:
            self.named_routes[name] = route
        return route

    def websocket(self, path: str, endpoint: Callable, *, name: Optional[str] = None) -> BaseRoute:
        return self._add(WebSocketRoute(path, endpoint, name=name), name)

    def mount(self, app: ASGIApp, at: str, *, name: Optional[str] = None) -> MountPoint:
        prefix = validate_mount_path(at)
        if name is None and hasattr(app, "engine_name"):
            name = app.engine_name
        route = Mount(prefix, app=app, name=name)
        mount_point = MountPoint(app=app, prefix=prefix, name=name, route=route)
        self.routes.append(route)
        self.mounts.append(mount_point)
        logger.debug(f"Mounted {app!r} at '{prefix or '/'}'")
        return mount_point

    def resources(self, name: str, *, controller: Optional[str] = None, only: Optional[Sequence[str]] = None, path: Optional[str] = None) -> List[BaseRoute]:
        """Draw the seven conventional routes for a collection."""
        controller = controller or name
        singular = singularize(name)
        base = path or f"/{name}"
        member = base + "/{id}"
        table: List[Tuple[str, str, List[str], Optional[str]]] = [
            ("index", base, ["GET"], name),
            ("create", base, ["POST"], None),
            ("new", base + "/new", ["GET"], f"new_{singular}"),
            ("edit", member + "/edit", ["GET"], f"edit_{singular}"),
            ("show", member, ["GET"], singular),
            ("update", member, ["PUT", "PATCH"], None),
            ("destroy", member, ["DELETE"], None),
        ]
        drawn = []
        for action, pattern, methods, route_name in table:
            if only is not None and action not in only:
                continue
            drawn.append(self.match(pattern, f"{controller}#{action}", name=route_name, methods=methods))
        return drawn

    # -- lookup ------------------------------------------------------------

    def url_path_for(self, name: str, **params: Any) -> str:
        route = self.named_routes.get(name)
        if route is None:
            raise NoMatchFound(name, params)
        return str(route.url_path_for(name, **params))

    def url_helpers(self, script_name: str = "") -> "RouteHelpers":
        return RouteHelpers(self, script_name)

    def mount_named(self, name: str) -> Optional[MountPoint]:
        for mount_point in self.mounts:
            if mount_point.name == name:
                return mount_point
        return None

    def mounted_engines(self, prefix: str = "") -> List[Tuple[Any, str]]:
        """Engines reachable from this route set with their full mount prefix."""
        found = []
        for mount_point in self.mounts:
            if mount_point.is_engine:
                full = prefix + mount_point.prefix
                found.append((mount_point.app, full))
                found.extend(mount_point.app.routes.mounted_engines(full))
        return found

    def describe(self, prefix: str = "") -> List[Dict[str, str]]:
        rows = []
        for route in self.routes:
            if route is self._api_mount:
                rows.extend(
                    {"name": r.name if r in self.named_routes.values() else "", "methods": ",".join(sorted(r.methods)), "path": prefix + r.path, "endpoint": r.endpoint.__qualname__}
                    for r in self._api.router.routes
                    if isinstance(r, APIRoute)
                )
                continue
            if isinstance(route, Mount):
                mount_point = next(m for m in self.mounts if m.route is route)
                rows.append({"name": mount_point.name or "", "methods": "", "path": (prefix + mount_point.prefix) or "/", "endpoint": repr(mount_point.app)})
                if mount_point.is_engine:
                    rows.extend(mount_point.app.routes.describe(prefix + mount_point.prefix))
                continue
            methods = ",".join(sorted(getattr(route, "methods", None) or [])) or "ANY"
            endpoint = getattr(route, "endpoint", None)
            rows.append({
                "name": getattr(route, "name", "") if route in self.named_routes.values() else "",
                "methods": methods,
                "path": prefix + getattr(route, "path", ""),
                "endpoint": getattr(endpoint, "__qualname__", repr(endpoint)),
            })
        return rows

    # -- dispatch ----------------------------------------------------------

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            return

        partial: Optional[Tuple[BaseRoute, Scope]] = None
        for route in self.routes:
            match, child_scope = route.matches(scope)
            base_scope = scope
            if match == Match.NONE and isinstance(route, Mount) and route.path and route_path(scope) == route.path:
                # "/bukkits" reaches the engine mounted at "/bukkits" as its "/"
                base_scope = {**scope, "path": scope["path"] + "/"}
                match, child_scope = route.matches(base_scope)
            if match == Match.NONE:
                continue
            route_scope = {**base_scope, **child_scope}
            if match == Match.PARTIAL:
                if partial is None:
                    partial = (route, route_scope)
                continue
            if isinstance(route, Mount):
                if await self._dispatch_mount(route, route_scope, receive, send):
                    return
                continue
            await route.handle(route_scope, receive, send)
            return

        if partial is not None:
            route, route_scope = partial
            await route.handle(route_scope, receive, send)
            return
        await self.default(scope, receive, send)

    async def _dispatch_mount(self, route: Mount, scope: Scope, receive: Receive, send: Send) -> bool:
        passed = False

        async def cascading_send(message):
            nonlocal passed
            if passed:
                return
            if is_cascade_pass(message):
                passed = True
                return
            await send(message)

        await route.handle(scope, receive, cascading_send)
        return not passed


class RouteHelpers:
    """`<name>_path()` helpers for a route set under a script name."""

    def __init__(self, routes: RouteSet, script_name: str = ""):
        self._routes = routes
        self._script_name = script_name.rstrip("/")

    @property
    def routes(self) -> RouteSet:
        return self._routes

    @property
    def script_name(self) -> str:
        return self._script_name

    def __getattr__(self, attr: str) -> Any:
        if attr.startswith("_"):
            raise AttributeError(attr)
        if attr.endswith("_path") and attr[:-5] in self._routes.named_routes:
            return functools.partial(self.path_for, attr[:-5])
        mount_point = self._routes.mount_named(attr)
        if mount_point is not None and mount_point.is_engine:
            return RouteHelpers(mount_point.app.routes, self._script_name + mount_point.prefix)
        raise AttributeError(f"No route helper '{attr}'")

    def path_for(self, name: str, **params: Any) -> str:
        return self._script_name + self._routes.url_path_for(name, **params)

    def names(self) -> List[str]:
        names = [f"{name}_path" for name in self._routes.named_routes]
        names.extend(m.name for m in self._routes.mounts if m.name and m.is_engine)
        return names

    def as_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.names()}

    def __repr__(self) -> str:
        return f"<RouteHelpers {self._routes!r} script_name={self._script_name!r}>"
