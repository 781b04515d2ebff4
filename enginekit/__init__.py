"""Mountable engines for FastAPI/Starlette applications."""

from .app import Application
from .controller import Controller, ControllerNotFound
from .core.config import Config, Configuration, ConfigurationError, Generators
from .core.initializers import Initializer, InitializerCollection, InitializerOrderError
from .core.middleware import MiddlewareStack
from .engine import Engine
from .naming import ModelName
from .routing import RouteHelpers, RouteSet

__all__ = [
    "Application",
    "Config",
    "Configuration",
    "ConfigurationError",
    "Controller",
    "ControllerNotFound",
    "Engine",
    "Generators",
    "Initializer",
    "InitializerCollection",
    "InitializerOrderError",
    "MiddlewareStack",
    "ModelName",
    "RouteHelpers",
    "RouteSet",
]
