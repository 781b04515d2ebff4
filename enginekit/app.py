import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.errors import ServerErrorMiddleware
from starlette.middleware.exceptions import ExceptionMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from .core.http import not_found_response
from .core.initializers import Initializer, InitializerCollection, declare
from .core.middleware import MiddlewareStack, global_exception_handler, log_requests
from .core.static import StaticAssets
from .core.validation import validate_asset_path
from .engine import Engine


logger = logging.getLogger(__name__)


class Application(Engine):
    """The host: owns the engines, boots them and serves requests.

    Boot runs one initializer graph: bootstrap steps, the application's own
    steps, every engine's steps in the order the engines were added, then the
    finisher (routes, configuration freeze, middleware stack).
    """

    def __init__(self, name: str = "application", root: Union[str, Path, None] = None, **config_values: Any):
        super().__init__(name, root)
        self.application = self
        self.engines: List[Engine] = []
        self.loaded_plugins: Dict[str, Engine] = {}
        self.namespaces: Dict[str, Engine] = {}
        self.booted = False
        self._boot_lock = threading.RLock()
        self.routes.default = self.not_found
        self.config.set(**config_values)

        self._bootstrap: List[Initializer] = []
        declare(self._bootstrap, "load_environment_hook", Engine._noop, owner=self)
        declare(self._bootstrap, "initialize_logger", Application._initialize_logger, owner=self)
        declare(
            self._bootstrap, "register_namespaces", Application._register_namespaces, owner=self, before="load_environment_config"
        )

        self._finisher: List[Initializer] = []
        declare(self._finisher, "load_routes", Application._load_routes, owner=self, after="engines_blank_point")
        declare(self._finisher, "finalize_configuration", Application._finalize_configuration, owner=self)
        declare(self._finisher, "build_middleware_stack", Application._build_middleware_stack, owner=self)
        declare(self._finisher, "finisher_hook", Application._finisher_hook, owner=self)

    def _set_default_config(self) -> None:
        # the application uses the framework's asset_path
        pass

    # -- composition -------------------------------------------------------

    def add_engine(self, engine: Engine) -> Engine:
        if self.booted:
            raise RuntimeError(f"Cannot add engine '{engine.engine_name}' after {self!r} has booted")
        if engine.application is not None and engine.application is not self:
            raise ValueError(f"Engine '{engine.engine_name}' already belongs to {engine.application!r}")
        if engine in self.engines:
            return engine
        if any(e.engine_name == engine.engine_name for e in self.engines):
            raise ValueError(f"An engine named '{engine.engine_name}' is already registered")
        engine.application = self
        engine._view_environment = None
        self._view_environment = None
        engine.config.inherit_from(self.config)
        self.config.generators.contribute(engine.config.app_generators)
        self.engines.append(engine)
        logger.debug(f"Added engine '{engine.engine_name}' to {self!r}")
        return engine

    def engine(self, name: str) -> Engine:
        for engine in self.engines:
            if engine.engine_name == name:
                return engine
        raise KeyError(f"No engine named '{name}'")

    @property
    def components(self) -> List[Engine]:
        return [self, *self.engines]

    def namespace_owner(self, namespace: str) -> Optional[Engine]:
        return self.namespaces.get(namespace)

    def shared_helpers(self) -> Dict[str, Callable]:
        helpers: Dict[str, Callable] = {}
        for engine in self.engines:
            if not engine.isolated:
                helpers.update(engine.helpers)
        helpers.update(self.helpers)
        return helpers

    def shared_view_paths(self) -> List[Path]:
        paths = []
        for component in self.components:
            if component is self or not component.isolated:
                views = component.paths.get("views")
                if views is not None:
                    paths.append(views)
        return paths

    def resolve_controller(self, name: str) -> Tuple[Engine, type]:
        if name in self.controllers:
            return self, self.controllers[name]
        for engine in self.engines:
            if not engine.isolated and name in engine.controllers:
                return engine, engine.controllers[name]
        return super().resolve_controller(name)

    # -- boot --------------------------------------------------------------

    @property
    def initializers(self) -> InitializerCollection:
        collection = InitializerCollection(self._bootstrap)
        for component in self.components:
            collection.extend(component._initializers)
        collection.extend(self._finisher)
        return collection

    def boot(self) -> "Application":
        with self._boot_lock:
            if self.booted:
                return self
            ordered = self.initializers.tsort()
            logger.info(f"Booting {self!r} with {len(ordered)} initializers")
            for initializer in ordered:
                initializer.run(self)
            self.booted = True
        return self

    @staticmethod
    def _initialize_logger(app: "Application", _: Any) -> None:
        level = str(app.config.log_level).upper()
        logging.getLogger("enginekit").setLevel(level)

    @staticmethod
    def _register_namespaces(app: "Application", _: Any) -> None:
        for component in [*app.engines, app]:
            if component.isolated:
                app.namespaces.setdefault(component.namespace, component)

    @staticmethod
    def _load_routes(app: "Application", _: Any) -> None:
        for component in app.components:
            component.load_routes()

    @staticmethod
    def _finalize_configuration(app: "Application", _: Any) -> None:
        for engine in app.engines:
            engine.config.finalize()
        app.config.finalize()

    @staticmethod
    def _build_middleware_stack(app: "Application", _: Any) -> None:
        app._stack = app.build_stack()

    @staticmethod
    def _finisher_hook(app: "Application", _: Any) -> None:
        for component in app.components:
            for block in component.config.after_initialize_blocks:
                block(app)

    # -- serving -----------------------------------------------------------

    def static_paths(self) -> List[Tuple[str, Path]]:
        paths = []
        for engine, prefix in self.routes.mounted_engines():
            public = engine.paths.get("public")
            if public is not None and public.is_dir():
                paths.append((prefix, public))
        public = self.paths.get("public")
        if public is not None and public.is_dir():
            paths.append(("", public))
        return paths

    def build_stack(self) -> ASGIApp:
        validate_asset_path(self.config.asset_path)
        stack = MiddlewareStack()
        if self.config.show_exceptions:
            stack.use(ServerErrorMiddleware, handler=global_exception_handler)
        stack.use(BaseHTTPMiddleware, dispatch=log_requests)
        origins = self.config.cors_allowed_origins
        if origins:
            stack.use(
                CORSMiddleware,
                allow_origins=origins,
                allow_credentials=True,
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["*"],
            )
        if self.config.serve_static_assets:
            stack.use(StaticAssets, paths=self.static_paths())
        for entry in self.middleware:
            stack.use(entry.klass, *entry.args, **entry.kwargs)
        return stack.build(ExceptionMiddleware(self._endpoint or self.routes))

    async def not_found(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            await send({"type": "websocket.close", "code": 1000})
            return
        response = not_found_response(self.paths.get("public"))
        await response(scope, receive, send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "lifespan":
            scope.setdefault("enginekit.app_root_path", scope.get("root_path", ""))
        await super().__call__(scope, receive, send)
