"""Mountable engines.

An engine is composed from a configuration, a route set, a middleware stack
and an ordered list of initializers. It is itself an ASGI app and is mounted
into a host `Application` through the host's routes.
"""

import inspect
import logging
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, select_autoescape
from starlette.middleware.exceptions import ExceptionMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from .controller import Controller, ControllerNotFound
from .core.config import Configuration
from .core.initializers import Initializer, InitializerCollection, declare
from .core.middleware import MiddlewareStack
from .core.validation import validate_asset_path, validate_engine_name
from .naming import ModelName, underscore
from .routing import RouteHelpers, RouteSet
from .services.plugins import load_plugins
from .services.scripts import run_script, run_scripts, script_globals_for
from .services.seeds import load_seed


logger = logging.getLogger(__name__)

DEFAULT_PATHS = {
    "public": "public",
    "routes": "config/routes.py",
    "environments": "config/environments",
    "initializers": "config/initializers",
    "plugins": "vendor/plugins",
    "helpers": "app/helpers",
    "controllers": "app/controllers",
    "views": "app/views",
    "seeds": "db/seeds.py",
}


class Engine:
    def __init__(self, name: str, root: Union[str, Path, None] = None, *, namespace: Union[str, ModuleType, None] = None):
        self.engine_name = validate_engine_name(name)
        self.root = Path(root).resolve() if root is not None else None
        self.application: Optional[Any] = None
        self.config = Configuration()
        self.routes = RouteSet(owner=self)
        self.helpers: Dict[str, Callable] = {}
        self.controllers: Dict[str, type] = {}
        self.models: Dict[str, type] = {}
        self.path_overrides: Dict[str, str] = {}
        self.namespace: Optional[str] = None
        self.isolated = False
        self._initializers: List[Initializer] = []
        self._endpoint: Optional[ASGIApp] = None
        self._stack: Optional[ASGIApp] = None
        self._view_environment: Optional[Environment] = None

        self._set_default_config()
        self._declare_builtin_initializers()
        if namespace is not None:
            self.isolate_namespace(namespace)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.engine_name}>"

    def _set_default_config(self) -> None:
        self.config.asset_path = f"/{self.engine_name}_engine%s"

    # -- paths -------------------------------------------------------------

    @property
    def paths(self) -> Dict[str, Path]:
        if self.root is None:
            return {}
        layout = {**DEFAULT_PATHS, **self.path_overrides}
        return {key: self.root / relative for key, relative in layout.items()}

    # -- namespace ---------------------------------------------------------

    def isolate_namespace(self, namespace: Union[str, ModuleType]) -> None:
        """Confine helpers, route helpers and model names to this engine."""
        if isinstance(namespace, ModuleType):
            module = namespace
            name = module.__name__.rsplit(".", 1)[-1]
            # a module already claimed by another engine keeps its first owner
            if getattr(module, "_engine", None) is None:
                module._engine = self
                module.table_name_prefix = f"{underscore(name)}_"
        else:
            name = namespace
        self.namespace = underscore(name)
        self.isolated = True
        logger.debug(f"Engine '{self.engine_name}' isolated in namespace '{self.namespace}'")

    @property
    def table_name_prefix(self) -> str:
        return f"{self.namespace}_" if self.isolated else ""

    # -- declarations ------------------------------------------------------

    def configure(self, block: Callable[[Configuration], Any]) -> Callable[[Configuration], Any]:
        block(self.config)
        return block

    def initializer(self, name: str, *, before: Optional[str] = None, after: Optional[str] = None) -> Callable:
        def register(block: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
            declare(self._initializers, name, block, owner=self, before=before, after=after)
            return block

        return register

    def helper(self, func: Optional[Callable] = None, *, name: Optional[str] = None) -> Callable:
        def register(fn: Callable) -> Callable:
            self.helpers[name or fn.__name__] = fn
            self._view_environment = None
            return fn

        return register(func) if func is not None else register

    def controller(self, name: Optional[str] = None) -> Callable[[type], type]:
        def register(cls: type) -> type:
            controller_name = name or cls.__dict__.get("controller_name") or _controller_name_for(cls)
            cls.controller_name = controller_name
            self.controllers[controller_name] = cls
            return cls

        return register

    def model(self, cls: type) -> type:
        model_name = ModelName(cls.__name__, self.namespace, isolated=self.isolated)
        cls.model_name = model_name
        if "__tablename__" not in cls.__dict__:
            cls.__tablename__ = model_name.table_name(self.table_name_prefix)
        self.models[cls.__name__] = cls
        return cls

    def endpoint(self, app: Optional[ASGIApp] = None) -> Optional[ASGIApp]:
        """Serve `app` instead of the route set; middleware still applies."""
        if app is not None:
            self._endpoint = app
            self._stack = None
        return self._endpoint

    @property
    def middleware(self) -> MiddlewareStack:
        return self.config.middleware

    @property
    def initializers(self) -> InitializerCollection:
        return InitializerCollection(self._initializers)

    @property
    def url_helpers(self) -> RouteHelpers:
        return self.routes.url_helpers()

    # -- lookup ------------------------------------------------------------

    def resolve_controller(self, name: str) -> Tuple["Engine", type]:
        if name in self.controllers:
            return self, self.controllers[name]
        app = self.application
        if not self.isolated and app is not None and app is not self:
            return app.resolve_controller(name)
        raise ControllerNotFound(f"No controller '{name}' in engine '{self.engine_name}'")

    def view_paths(self) -> List[Path]:
        app = self.application
        if self.isolated or app is None or app is self:
            views = self.paths.get("views")
            return [views] if views is not None else []
        return app.shared_view_paths()

    def view_environment(self) -> Environment:
        if self._view_environment is None:
            loaders = [FileSystemLoader(str(path)) for path in self.view_paths() if path.is_dir()]
            self._view_environment = Environment(
                loader=ChoiceLoader(loaders),
                autoescape=select_autoescape(enabled_extensions=("html", "xml"), default_for_string=True),
            )
        return self._view_environment

    # -- boot steps --------------------------------------------------------

    def _declare_builtin_initializers(self) -> None:
        declare(self._initializers, "load_environment_config", Engine._load_environment_config, owner=self)
        declare(self._initializers, "load_plugins", Engine._load_plugins, owner=self)
        declare(self._initializers, "load_app_code", Engine._load_app_code, owner=self)
        declare(self._initializers, "load_config_initializers", Engine._load_config_initializers, owner=self)
        declare(self._initializers, "engines_blank_point", Engine._noop, owner=self, after="load_config_initializers")

    @staticmethod
    def _noop(engine: "Engine", app: Any) -> None:
        pass

    @staticmethod
    def _load_environment_config(engine: "Engine", app: Any) -> None:
        environments = engine.paths.get("environments")
        if environments is None:
            return
        env_file = environments / f"{engine.config.environment}.py"
        if env_file.is_file():
            run_script(env_file, **script_globals_for(engine))
            logger.debug(f"Loaded {env_file} for engine '{engine.engine_name}'")

    @staticmethod
    def _load_plugins(engine: "Engine", app: Any) -> None:
        load_plugins(engine, app.loaded_plugins)

    @staticmethod
    def _load_app_code(engine: "Engine", app: Any) -> None:
        helpers_dir = engine.paths.get("helpers")
        if helpers_dir is not None and helpers_dir.is_dir():
            for path in sorted(helpers_dir.glob("*.py")):
                namespace = run_script(path, **script_globals_for(engine))
                for name, value in namespace.items():
                    if inspect.isfunction(value) and not name.startswith("_") and value.__module__ == namespace["__name__"]:
                        engine.helpers.setdefault(name, value)

        controllers_dir = engine.paths.get("controllers")
        if controllers_dir is not None and controllers_dir.is_dir():
            for path in sorted(controllers_dir.glob("*.py")):
                namespace = run_script(path, **script_globals_for(engine))
                for value in namespace.values():
                    if (
                        inspect.isclass(value)
                        and issubclass(value, Controller)
                        and value is not Controller
                        and value.__module__ == namespace["__name__"]
                        and value not in engine.controllers.values()
                    ):
                        engine.controller()(value)

    @staticmethod
    def _load_config_initializers(engine: "Engine", app: Any) -> None:
        initializers_dir = engine.paths.get("initializers")
        if initializers_dir is not None:
            run_scripts(initializers_dir, **script_globals_for(engine))

    def load_routes(self) -> bool:
        routes_file = self.paths.get("routes")
        if routes_file is None or not routes_file.is_file():
            return False
        self.routes.load(routes_file)
        return True

    def load_seed(self) -> bool:
        return load_seed(self)

    # -- ASGI --------------------------------------------------------------

    def build_stack(self) -> ASGIApp:
        validate_asset_path(self.config.asset_path)
        return self.middleware.build(ExceptionMiddleware(self._endpoint or self.routes))

    def _ensure_booted(self) -> None:
        if self.application is not None and not self.application.booted:
            self.application.boot()

    async def _lifespan(self, scope: Scope, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                try:
                    self._ensure_booted()
                except Exception as e:
                    logger.error(f"Boot failed for {self!r}: {e}", exc_info=True)
                    await send({"type": "lifespan.startup.failed", "message": str(e)})
                    return
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(scope, receive, send)
            return
        self._ensure_booted()
        scope["enginekit.routes"] = self.routes
        scope["enginekit.engine"] = self
        if self._stack is None:
            self._stack = self.build_stack()
        await self._stack(scope, receive, send)


def _controller_name_for(cls: type) -> str:
    name = cls.__name__
    if name.endswith("Controller") and name != "Controller":
        name = name[: -len("Controller")]
    return underscore(name)
