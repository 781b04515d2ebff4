import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp


logger = logging.getLogger(__name__)


@dataclass
class MiddlewareEntry:
    klass: Callable[..., ASGIApp]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)

    def build(self, app: ASGIApp) -> ASGIApp:
        return self.klass(app, *self.args, **self.kwargs)

    def __repr__(self) -> str:
        return f"<Middleware {getattr(self.klass, '__name__', self.klass)}>"


class MiddlewareStack:
    """Ordered middleware declarations; the first entry is the outermost."""

    def __init__(self, entries: List[MiddlewareEntry] | None = None):
        self._entries: List[MiddlewareEntry] = list(entries or [])

    def __iter__(self) -> Iterator[MiddlewareEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, klass: Any) -> bool:
        return any(entry.klass is klass for entry in self._entries)

    def __getitem__(self, index: int) -> MiddlewareEntry:
        return self._entries[index]

    @property
    def classes(self) -> List[Any]:
        return [entry.klass for entry in self._entries]

    def _index(self, target: Any) -> int:
        if isinstance(target, int):
            if not -len(self._entries) <= target < len(self._entries):
                raise IndexError(f"No middleware at position {target}")
            return target % len(self._entries)
        for i, entry in enumerate(self._entries):
            if entry.klass is target:
                return i
        raise ValueError(f"No such middleware to insert relative to: {target!r}")

    def use(self, klass: Callable[..., ASGIApp], *args: Any, **kwargs: Any) -> None:
        self._entries.append(MiddlewareEntry(klass, args, kwargs))

    def unshift(self, klass: Callable[..., ASGIApp], *args: Any, **kwargs: Any) -> None:
        self._entries.insert(0, MiddlewareEntry(klass, args, kwargs))

    def insert_before(self, target: Any, klass: Callable[..., ASGIApp], *args: Any, **kwargs: Any) -> None:
        self._entries.insert(self._index(target), MiddlewareEntry(klass, args, kwargs))

    def insert_after(self, target: Any, klass: Callable[..., ASGIApp], *args: Any, **kwargs: Any) -> None:
        self._entries.insert(self._index(target) + 1, MiddlewareEntry(klass, args, kwargs))

    def swap(self, target: Any, klass: Callable[..., ASGIApp], *args: Any, **kwargs: Any) -> None:
        self._entries[self._index(target)] = MiddlewareEntry(klass, args, kwargs)

    def delete(self, target: Any) -> None:
        del self._entries[self._index(target)]

    def copy(self) -> "MiddlewareStack":
        return MiddlewareStack(self._entries)

    def build(self, app: ASGIApp) -> ASGIApp:
        for entry in reversed(self._entries):
            app = entry.build(app)
        return app


async def log_requests(request: Request, call_next: Callable):
    start_time = time.time()
    request_id = f"{int(time.time() * 1000)}-{id(request)}"

    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        # Only log slow requests (>1s) or errors
        if process_time > 1.0 or response.status_code >= 400:
            logger.info(f"[{request_id}] {request.method} {request.url.path} - {response.status_code} - {process_time:.2f}s")
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"[{request_id}] {request.method} {request.url.path} - ERROR: {str(e)} - {process_time:.2f}s")
        raise


async def global_exception_handler(request: Request, exc: Exception):
    request_id = f"{int(time.time() * 1000)}-{id(request)}"
    logger.error(f"[{request_id}] Unhandled exception in {request.method} {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
