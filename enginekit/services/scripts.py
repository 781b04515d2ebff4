import logging
import runpy
from pathlib import Path
from typing import Any, Dict, List


logger = logging.getLogger(__name__)


def run_script(path: Path, **script_globals: Any) -> Dict[str, Any]:
    """Execute a Python file with the given globals and return its namespace."""
    try:
        return runpy.run_path(str(path), init_globals=script_globals, run_name=f"enginekit_script:{path.stem}")
    except Exception as e:
        logger.error(f"Failed to run {path}: {e}")
        raise


def run_scripts(directory: Path, **script_globals: Any) -> List[Path]:
    """Run every *.py file in a directory in name order."""
    if not directory.is_dir():
        return []
    executed = []
    for path in sorted(directory.glob("*.py")):
        if path.name.startswith("_"):
            continue
        run_script(path, **script_globals)
        executed.append(path)
    return executed


def script_globals_for(engine: Any) -> Dict[str, Any]:
    return {
        "engine": engine,
        "config": engine.config,
        "app": engine.application,
    }
