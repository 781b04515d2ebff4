import logging
from pathlib import Path
from typing import Any, Optional

from starlette.responses import FileResponse, HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.types import Message, Receive, Scope, Send


logger = logging.getLogger(__name__)

CASCADE_HEADER = "x-cascade"
CASCADE_CLOSE_REASON = "x-cascade: pass"


def route_path(scope: Scope) -> str:
    """The request path relative to the app the scope was routed to."""
    path = scope.get("path", "/")
    root_path = scope.get("root_path", "")
    if not root_path or not path.startswith(root_path):
        return path
    if path == root_path:
        return ""
    if path[len(root_path)] == "/":
        return path[len(root_path):]
    return path


def is_cascade_pass(message: Message) -> bool:
    """True for a response start or websocket close that tells the caller to try the next route."""
    if message.get("type") == "websocket.close":
        return message.get("reason") == CASCADE_CLOSE_REASON
    if message.get("type") != "http.response.start" or message.get("status") != 404:
        return False
    for name, value in message.get("headers", []):
        if name.lower() == CASCADE_HEADER.encode() and value.lower() == b"pass":
            return True
    return False


async def cascade_not_found(scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] == "websocket":
        await send({"type": "websocket.close", "code": 1000, "reason": CASCADE_CLOSE_REASON})
        return
    response = PlainTextResponse("Not Found", status_code=404, headers={CASCADE_HEADER: "pass"})
    await response(scope, receive, send)


def to_response(result: Any) -> Response:
    """Turn an endpoint's return value into a response."""
    if isinstance(result, Response):
        return result
    if result is None:
        return Response(status_code=204)
    if isinstance(result, str):
        return HTMLResponse(result)
    if isinstance(result, bytes):
        return Response(result, media_type="application/octet-stream")
    if isinstance(result, (dict, list)):
        return JSONResponse(result)
    raise TypeError(f"Cannot build a response from {type(result).__name__}")


def not_found_response(public_dir: Optional[Path] = None) -> Response:
    if public_dir is not None:
        page = Path(public_dir) / "404.html"
        if page.is_file():
            return FileResponse(page, status_code=404, media_type="text/html")
    return PlainTextResponse("Not Found", status_code=404)
