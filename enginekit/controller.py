"""Controllers and the helper context their views render with."""

import asyncio
import logging
from functools import cached_property
from typing import Any, Dict, Optional

from fastapi import HTTPException
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.types import Receive, Scope, Send

from .core.http import to_response
from .helpers import AssetHelpers, RecordHelpers


logger = logging.getLogger(__name__)


class ControllerNotFound(LookupError):
    pass


class ViewContext:
    """Names visible to a controller's views and helpers.

    An isolated engine sees its own helpers, its own route helpers and
    `main_app`. Everything else shares the application's helpers and the
    route helpers of whichever route set served the request.
    """

    def __init__(self, engine: Any, request: Request):
        self.engine = engine
        self.request = request
        scope = request.scope
        script_name = scope.get("root_path", "")
        serving_engine = scope.get("enginekit.engine") or engine
        app = engine.application

        if engine.isolated:
            routes = engine.routes
            helpers = dict(engine.helpers)
        else:
            routes = scope.get("enginekit.routes") or engine.routes
            helpers = app.shared_helpers() if app is not None else dict(engine.helpers)

        self.route_helpers = routes.url_helpers(script_name)
        self.main_app = None
        if app is not None and engine.isolated and app is not engine:
            self.main_app = app.routes.url_helpers(scope.get("enginekit.app_root_path", ""))

        values: Dict[str, Any] = {}
        values.update(AssetHelpers(serving_engine, script_name).as_dict())
        values.update(RecordHelpers(self.route_helpers).as_dict())
        values.update(self.route_helpers.as_dict())
        values.update(helpers)
        if self.main_app is not None:
            values["main_app"] = self.main_app
        values["request"] = request
        self.values = values

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["values"][name]
        except KeyError:
            raise AttributeError(f"'{name}' is not available in {self.engine.engine_name} views") from None

    def __contains__(self, name: str) -> bool:
        return name in self.values


class Controller:
    controller_name: Optional[str] = None

    def __init__(self, request: Request, engine: Any, action_name: str):
        self.request = request
        self.engine = engine
        self.action_name = action_name

    @property
    def params(self) -> Dict[str, Any]:
        return {**self.request.query_params, **self.request.path_params}

    @cached_property
    def helpers(self) -> ViewContext:
        return ViewContext(self.engine, self.request)

    def render(
        self,
        template: Optional[str] = None,
        *,
        inline: Optional[str] = None,
        text: Optional[str] = None,
        json: Any = None,
        status: int = 200,
        **context: Any,
    ) -> Response:
        if text is not None:
            return PlainTextResponse(text, status_code=status)
        if json is not None:
            return JSONResponse(json, status_code=status)

        environment = self.engine.view_environment()
        if inline is not None:
            compiled = environment.from_string(inline)
        else:
            name = template or f"{self.controller_name}/{self.action_name}.html"
            compiled = environment.get_template(name)
        html = compiled.render({**self.helpers.values, **context, "controller": self})
        return HTMLResponse(html, status_code=status)


class ControllerAction:
    """ASGI endpoint for a "controller#action" route."""

    def __init__(self, route_set: Any, controller: str, action: str):
        self.route_set = route_set
        self.controller = controller
        self.action = action
        self.__name__ = f"{controller}#{action}"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        owner = self.route_set.owner
        try:
            engine, controller_class = owner.resolve_controller(self.controller)
        except ControllerNotFound as e:
            logger.warning(f"Unknown controller {self.controller!r}: {e}")
            raise HTTPException(status_code=404, detail=f"The controller '{self.controller}' could not be found") from e
        request = Request(scope, receive, send)
        controller = controller_class(request, engine, self.action)

        method = getattr(controller, self.action, None) if not self.action.startswith("_") else None
        if method is None or not callable(method):
            logger.warning(f"Unknown action {self.action!r} for controller {self.controller!r}")
            raise HTTPException(status_code=404, detail=f"The action '{self.action}' could not be found")

        if asyncio.iscoroutinefunction(method):
            result = await method()
        else:
            result = await run_in_threadpool(method)
        response = to_response(result)
        await response(scope, receive, send)

    def __repr__(self) -> str:
        return f"<ControllerAction {self.controller}#{self.action}>"
