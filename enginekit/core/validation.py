import logging
import re


logger = logging.getLogger(__name__)

ENGINE_NAME_PATTERN = re.compile(r'^[a-z][a-z0-9_]*$')
INITIALIZER_NAME_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_.:-]*$')
MOUNT_SEGMENT_PATTERN = re.compile(r'^[A-Za-z0-9_.~-]+$')


def validate_engine_name(name: str) -> str:
    if not name or not ENGINE_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid engine name {name!r}: use lowercase letters, digits and underscores")
    return name


def validate_initializer_name(name: str) -> str:
    if not name or not INITIALIZER_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid initializer name {name!r}")
    return name


def validate_mount_path(path: str) -> str:
    """Normalize a mount prefix to "/a/b" form ("" for the root)."""
    if not path or not path.startswith('/'):
        raise ValueError(f"Mount path must start with '/', got {path!r}")
    stripped = path.rstrip('/')
    if not stripped:
        return ''
    segments = stripped.split('/')[1:]
    for segment in segments:
        if '{' in segment:
            continue
        if segment in ('.', '..') or not MOUNT_SEGMENT_PATTERN.match(segment):
            raise ValueError(f"Invalid mount path {path!r}")
    return stripped


def validate_asset_path(template: str) -> str:
    if not isinstance(template, str) or template.count('%s') != 1:
        raise ValueError(f"asset_path must contain exactly one '%s' placeholder, got {template!r}")
    return template
