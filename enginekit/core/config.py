import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from dotenv import load_dotenv


load_dotenv()

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
    """Process-wide settings loaded from environment variables.

    These only seed the framework defaults; applications and engines keep
    their own layered `Configuration` on top of them.
    """

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "WARNING")
    SERVE_STATIC_ASSETS: bool = _env_flag("SERVE_STATIC_ASSETS", "true")
    SHOW_EXCEPTIONS: bool = _env_flag("SHOW_EXCEPTIONS", "true")
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: str = os.getenv("PORT", "8080")

    @staticmethod
    def allowed_origins(extra_origins: List[str] | None = None) -> List[str]:
        env_origins = [o.strip() for o in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",") if o.strip()]
        merged = list(env_origins)
        if extra_origins:
            merged.extend(extra_origins)
        # Deduplicate while preserving order
        seen = set()
        result: List[str] = []
        for origin in merged:
            if origin not in seen:
                seen.add(origin)
                result.append(origin)
        return result

    @classmethod
    def validate(cls) -> None:
        if not cls.ENVIRONMENT:
            raise ValueError("ENVIRONMENT environment variable must not be empty")
        if not cls.PORT.isdigit():
            raise ValueError(f"PORT environment variable must be numeric, got {cls.PORT!r}")
        if not isinstance(logging.getLevelName(cls.LOG_LEVEL.upper()), int):
            raise ValueError(f"Unknown LOG_LEVEL {cls.LOG_LEVEL!r}")


def framework_defaults() -> Dict[str, Any]:
    return {
        "environment": Config.ENVIRONMENT,
        "log_level": Config.LOG_LEVEL,
        "serve_static_assets": Config.SERVE_STATIC_ASSETS,
        "show_exceptions": Config.SHOW_EXCEPTIONS,
        "asset_path": "%s",
        "asset_host": None,
        "cors_allowed_origins": Config.allowed_origins(),
    }


class ConfigurationError(AttributeError):
    """Raised when reading an option nobody set, shared or defaulted."""


DEFAULT_NAMESPACE = "enginekit"

DEFAULT_GENERATORS: Dict[str, Any] = {
    "orm": "sqlalchemy",
    "template_engine": "jinja2",
    "test_framework": "pytest",
}

LAYERS = ("local", "contributed", "inherited", "defaults")


class Generators:
    """Per-namespace code generator options.

    Every key is resolved on its own through the layers named in
    `precedence`: options set on this object, options contributed by engines
    (`app_generators`), the parent's resolved options, and the defaults.
    `key_precedence` overrides the order for individual keys.
    """

    def __init__(
        self,
        parent: Optional["Generators"] = None,
        defaults: Optional[Dict[str, Any]] = None,
        precedence: Iterable[str] = LAYERS,
        key_precedence: Optional[Dict[str, Iterable[str]]] = None,
    ):
        self.parent = parent
        self.defaults = {DEFAULT_NAMESPACE: dict(DEFAULT_GENERATORS if defaults is None else defaults)}
        self.precedence = self._check_layers(precedence)
        self.key_precedence = {k: self._check_layers(v) for k, v in (key_precedence or {}).items()}
        self.fallbacks: Dict[str, str] = {}
        self._local: Dict[str, Dict[str, Any]] = {}
        self._contributions: List["Generators"] = []
        self._snapshot: Optional[Dict[str, Dict[str, Any]]] = None

    @staticmethod
    def _check_layers(layers: Iterable[str]) -> Tuple[str, ...]:
        layers = tuple(layers)
        unknown = [layer for layer in layers if layer not in LAYERS]
        if unknown:
            raise ValueError(f"Unknown generator layers: {', '.join(unknown)}")
        return layers

    def __call__(self, block: Callable[["Generators"], Any]) -> "Generators":
        block(self)
        return self

    def set(self, namespace: str = DEFAULT_NAMESPACE, **options: Any) -> "Generators":
        self._local.setdefault(namespace, {}).update(options)
        return self

    def _set_with_options(self, key: str, value: Any, options: Dict[str, Any]) -> "Generators":
        self.set(**{key: value})
        if options:
            self.set(str(value), **options)
        return self

    def orm(self, value: Any, **options: Any) -> "Generators":
        return self._set_with_options("orm", value, options)

    def template_engine(self, value: Any, **options: Any) -> "Generators":
        return self._set_with_options("template_engine", value, options)

    def test_framework(self, value: Any, **options: Any) -> "Generators":
        return self._set_with_options("test_framework", value, options)

    def contribute(self, other: "Generators") -> None:
        self._contributions.append(other)

    def inherit_from(self, parent: Optional["Generators"]) -> None:
        self.parent = parent
        self._snapshot = None

    def finalize(self) -> None:
        """Freeze the inherited layer at its current value."""
        self._snapshot = self.parent.options if self.parent is not None else {}

    def _layer(self, name: str) -> List[Dict[str, Dict[str, Any]]]:
        if name == "local":
            return [self._local]
        if name == "contributed":
            return [c._local for c in self._contributions]
        if name == "inherited":
            if self._snapshot is not None:
                return [self._snapshot]
            return [self.parent.options] if self.parent is not None else []
        return [self.defaults]

    def resolve(self, key: str, namespace: str = DEFAULT_NAMESPACE) -> Any:
        for layer in self.key_precedence.get(key, self.precedence):
            for values in self._layer(layer):
                scoped = values.get(namespace, {})
                if key in scoped:
                    return scoped[key]
        fallback = self.fallbacks.get(namespace)
        if fallback is not None and fallback != namespace:
            return self.resolve(key, fallback)
        raise KeyError(f"{namespace}.{key}")

    @property
    def options(self) -> Dict[str, Dict[str, Any]]:
        keys: Dict[str, List[str]] = {}
        for layer in LAYERS:
            for values in self._layer(layer):
                for namespace, scoped in values.items():
                    bucket = keys.setdefault(namespace, [])
                    bucket.extend(k for k in scoped if k not in bucket)

        resolved: Dict[str, Dict[str, Any]] = {}
        for namespace, names in keys.items():
            for name in names:
                try:
                    resolved.setdefault(namespace, {})[name] = self.resolve(name, namespace)
                except KeyError:
                    # present only in a layer excluded by this key's precedence
                    continue
        return resolved

    def __repr__(self) -> str:
        return f"<Generators {self.options.get(DEFAULT_NAMESPACE, {})}>"


_MISSING = object()


class Configuration:
    """Layered, attribute-style option bag.

    Lookup order per key: values set on this object, then the parent's value
    when the key is inheritable (a framework default or a key the parent
    shared), then the framework defaults. Anything else raises
    `ConfigurationError`, so `hasattr(config, name)` answers whether an option
    is visible here.
    """

    _SLOTS = (
        "_values",
        "_defaults",
        "_parent",
        "_shared",
        "_snapshot",
        "_after_initialize",
        "middleware",
        "generators",
        "app_generators",
    )

    def __init__(self, parent: Optional["Configuration"] = None, defaults: Optional[Dict[str, Any]] = None):
        from .middleware import MiddlewareStack

        object.__setattr__(self, "_values", {})
        object.__setattr__(self, "_defaults", framework_defaults() if defaults is None else dict(defaults))
        object.__setattr__(self, "_parent", None)
        object.__setattr__(self, "_shared", set())
        object.__setattr__(self, "_snapshot", None)
        object.__setattr__(self, "_after_initialize", [])
        object.__setattr__(self, "middleware", MiddlewareStack())
        object.__setattr__(self, "generators", Generators())
        object.__setattr__(self, "app_generators", Generators(defaults={}))
        if parent is not None:
            self.inherit_from(parent)

    def inherit_from(self, parent: Optional["Configuration"]) -> None:
        object.__setattr__(self, "_parent", parent)
        object.__setattr__(self, "_snapshot", None)
        self.generators.inherit_from(parent.generators if parent is not None else None)

    @property
    def parent(self) -> Optional["Configuration"]:
        return self._parent

    def share(self, *keys: str) -> None:
        """Let child configurations inherit these keys."""
        self._shared.update(keys)

    def inheritable_keys(self) -> set:
        keys = set(self._defaults) | self._shared
        if self._parent is not None:
            keys |= self._parent.inheritable_keys()
        return keys

    def _inherited(self, key: str) -> Any:
        if self._snapshot is not None:
            return self._snapshot.get(key, _MISSING)
        parent = self._parent
        if parent is None or key not in parent.inheritable_keys():
            return _MISSING
        return parent._lookup(key)

    def _lookup(self, key: str) -> Any:
        if key in self._values:
            return self._values[key]
        value = self._inherited(key)
        if value is not _MISSING:
            return value
        return self._defaults.get(key, _MISSING)

    def __getattr__(self, key: str) -> Any:
        if key.startswith("__"):
            raise AttributeError(key)
        value = self._lookup(key)
        if value is _MISSING:
            raise ConfigurationError(f"undefined configuration option '{key}'")
        return value

    def __setattr__(self, key: str, value: Any) -> None:
        if key in self._SLOTS:
            raise AttributeError(f"'{key}' cannot be reassigned")
        self._values[key] = value

    def __delattr__(self, key: str) -> None:
        try:
            del self._values[key]
        except KeyError:
            raise ConfigurationError(f"undefined configuration option '{key}'") from None

    def __contains__(self, key: str) -> bool:
        return self._lookup(key) is not _MISSING

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, **values: Any) -> "Configuration":
        for key, value in values.items():
            setattr(self, key, value)
        return self

    def is_local(self, key: str) -> bool:
        return key in self._values

    def after_initialize(self, block: Callable) -> Callable:
        self._after_initialize.append(block)
        return block

    @property
    def after_initialize_blocks(self) -> List[Callable]:
        return list(self._after_initialize)

    def finalize(self) -> None:
        """Snapshot inherited values; later changes on the parent are not seen."""
        snapshot: Dict[str, Any] = {}
        parent = self._parent
        if parent is not None:
            for key in parent.inheritable_keys():
                value = parent._lookup(key)
                if value is not _MISSING:
                    snapshot[key] = value
        object.__setattr__(self, "_snapshot", snapshot)
        self.generators.finalize()

    def to_dict(self) -> Dict[str, Any]:
        keys = set(self._defaults) | set(self._values)
        if self._parent is not None:
            keys |= self._parent.inheritable_keys()
        result = {}
        for key in sorted(keys):
            value = self._lookup(key)
            if value is not _MISSING:
                result[key] = value
        return result

    def __repr__(self) -> str:
        return f"<Configuration {self._values}>"
