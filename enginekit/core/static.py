import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from starlette.responses import FileResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from .http import route_path


logger = logging.getLogger(__name__)


class StaticAssets:
    """Serve files from public directories before the wrapped app runs.

    `paths` pairs a URL prefix with a directory. Longer prefixes are tried
    first so an engine's public directory, registered under its mount prefix,
    wins over the host's public directory for the same URL.
    """

    def __init__(self, app: ASGIApp, paths: Iterable[Tuple[str, os.PathLike | str]]):
        self.app = app
        entries = [(prefix.rstrip("/"), Path(directory).resolve()) for prefix, directory in paths]
        # stable sort keeps registration order among equal prefixes
        self.paths: List[Tuple[str, Path]] = sorted(entries, key=lambda e: len(e[0]), reverse=True)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope.get("method") in ("GET", "HEAD"):
            found = self.lookup(route_path(scope))
            if found is not None:
                response = FileResponse(found)
                await response(scope, receive, send)
                return
        await self.app(scope, receive, send)

    def lookup(self, path: str) -> Optional[Path]:
        for prefix, directory in self.paths:
            if prefix and path != prefix and not path.startswith(prefix + "/"):
                continue
            relative = path[len(prefix):].lstrip("/")
            found = self._find(directory, relative)
            if found is not None:
                return found
        return None

    @staticmethod
    def _find(directory: Path, relative: str) -> Optional[Path]:
        if not directory.is_dir():
            return None
        candidates = [relative, f"{relative}.html", f"{relative}/index.html"] if relative else ["index.html"]
        for candidate in candidates:
            full = (directory / candidate).resolve()
            if not full.is_relative_to(directory):
                logger.warning(f"Refusing static path outside {directory}: {relative}")
                return None
            if full.is_file():
                return full
        return None
