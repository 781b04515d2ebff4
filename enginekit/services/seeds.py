import logging
from typing import Any

from .scripts import run_script, script_globals_for


logger = logging.getLogger(__name__)


def load_seed(engine: Any) -> bool:
    """Run the engine's own db/seeds.py; other engines' seeds are untouched."""
    seed_file = engine.paths.get("seeds")
    if seed_file is None or not seed_file.is_file():
        logger.info(f"No seed file for engine '{engine.engine_name}' at {seed_file}")
        return False
    run_script(seed_file, **script_globals_for(engine))
    logger.info(f"Loaded seeds for engine '{engine.engine_name}'")
    return True
