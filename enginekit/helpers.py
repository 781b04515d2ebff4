import logging
import re
from typing import Any, Optional

from markupsafe import Markup, escape

from .naming import ModelName


logger = logging.getLogger(__name__)

ASSET_DIRECTORIES = {
    "image": "images",
    "javascript": "javascripts",
    "stylesheet": "stylesheets",
}
ASSET_EXTENSIONS = {
    "javascript": ".js",
    "stylesheet": ".css",
}
_URI_PATTERN = re.compile(r'^([a-z][a-z0-9+.-]*:)?//', re.IGNORECASE)


def _tag(name: str, attributes: dict) -> Markup:
    attrs = " ".join(f'{key}="{escape(value)}"' for key, value in sorted(attributes.items()) if value is not None)
    return Markup(f"<{name} {attrs} />")


class AssetHelpers:
    """Asset URLs for a request served by `engine` under `script_name`.

    The path is wrapped by the engine's `asset_path` template (unless the
    engine is the application itself), then by the application's template,
    then prefixed with the script name and the optional asset host.
    """

    def __init__(self, engine: Any, script_name: str = ""):
        self.engine = engine
        self.script_name = script_name.rstrip("/")

    def _wrap(self, path: str) -> str:
        app = self.engine.application
        if app is not None and app is not self.engine:
            path = self.engine.config.asset_path % path
            return app.config.asset_path % path
        return self.engine.config.asset_path % path

    def asset_path(self, source: str, kind: Optional[str] = None) -> str:
        source = str(source)
        if _URI_PATTERN.match(source):
            return source
        extension = ASSET_EXTENSIONS.get(kind or "")
        if extension and not re.search(r'\.\w+$', source.rsplit('/', 1)[-1]):
            source = source + extension
        if source.startswith("/"):
            path = source
        elif kind in ASSET_DIRECTORIES:
            path = f"/{ASSET_DIRECTORIES[kind]}/{source}"
        else:
            path = f"/{source}"
        host = self.engine.config.get("asset_host") or ""
        return f"{host.rstrip('/')}{self.script_name}{self._wrap(path)}"

    def image_path(self, source: str) -> str:
        return self.asset_path(source, "image")

    def javascript_path(self, source: str) -> str:
        return self.asset_path(source, "javascript")

    def stylesheet_path(self, source: str) -> str:
        return self.asset_path(source, "stylesheet")

    def image_tag(self, source: str, alt: Optional[str] = None, **attributes: Any) -> Markup:
        if alt is None:
            alt = source.rsplit("/", 1)[-1].split(".", 1)[0].replace("_", " ").capitalize()
        return _tag("img", {"src": self.image_path(source), "alt": alt, **attributes})

    def javascript_include_tag(self, *sources: str) -> Markup:
        tags = [
            Markup(f'<script src="{escape(self.javascript_path(source))}" type="text/javascript"></script>')
            for source in sources
        ]
        return Markup("\n").join(tags)

    def stylesheet_link_tag(self, *sources: str, media: str = "screen") -> Markup:
        tags = [
            _tag("link", {"href": self.stylesheet_path(source), "media": media, "rel": "stylesheet", "type": "text/css"})
            for source in sources
        ]
        return Markup("\n").join(tags)

    def as_dict(self) -> dict:
        return {
            "asset_path": self.asset_path,
            "image_path": self.image_path,
            "javascript_path": self.javascript_path,
            "stylesheet_path": self.stylesheet_path,
            "image_tag": self.image_tag,
            "javascript_include_tag": self.javascript_include_tag,
            "stylesheet_link_tag": self.stylesheet_link_tag,
        }


def model_name_for(record: Any) -> ModelName:
    klass = record if isinstance(record, type) else type(record)
    model_name = getattr(klass, "model_name", None)
    if isinstance(model_name, ModelName):
        return model_name
    return ModelName(klass.__name__)


def to_param(record: Any) -> Optional[str]:
    if isinstance(record, type):
        return None
    to_param_method = getattr(record, "to_param", None)
    value = to_param_method() if callable(to_param_method) else getattr(record, "id", None)
    return None if value is None else str(value)


class RecordHelpers:
    """Paths and form fields derived from a record's model name."""

    def __init__(self, route_helpers: Any):
        self.route_helpers = route_helpers

    def polymorphic_path(self, record: Any) -> str:
        model_name = model_name_for(record)
        param = to_param(record)
        if param is None:
            return getattr(self.route_helpers, f"{model_name.route_key}_path")()
        return getattr(self.route_helpers, f"{model_name.singular_route_key}_path")(id=param)

    def field_name(self, record: Any, attribute: str) -> str:
        return f"{model_name_for(record).param_key}[{attribute}]"

    def field_id(self, record: Any, attribute: str) -> str:
        return f"{model_name_for(record).param_key}_{attribute}"

    def text_field(self, record: Any, attribute: str, **attributes: Any) -> Markup:
        value = None if isinstance(record, type) else getattr(record, attribute, None)
        return _tag("input", {
            "id": self.field_id(record, attribute),
            "name": self.field_name(record, attribute),
            "type": "text",
            "value": value,
            **attributes,
        })

    def as_dict(self) -> dict:
        return {
            "polymorphic_path": self.polymorphic_path,
            "field_name": self.field_name,
            "field_id": self.field_id,
            "text_field": self.text_field,
        }
