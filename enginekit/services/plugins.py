import logging
from pathlib import Path
from typing import Any, Dict, List

from .scripts import run_script, script_globals_for


logger = logging.getLogger(__name__)


def discover_plugins(engine: Any) -> List[Path]:
    plugins_dir = engine.paths.get("plugins")
    if plugins_dir is None or not plugins_dir.is_dir():
        return []
    return [d for d in sorted(plugins_dir.iterdir()) if d.is_dir() and (d / "init.py").is_file()]


def load_plugins(engine: Any, registry: Dict[str, Any]) -> List[str]:
    """Run each plugin's init.py against the engine's config.

    `registry` maps plugin name to the engine that loaded it first; a plugin
    another engine already loaded is skipped with a warning.
    """
    loaded = []
    for plugin_dir in discover_plugins(engine):
        name = plugin_dir.name
        owner = registry.get(name)
        if owner is not None and owner is not engine:
            logger.warning(
                f"Plugin '{name}' from {plugin_dir} is not loaded for engine '{engine.engine_name}': "
                f"already loaded by '{owner.engine_name}'"
            )
            continue
        registry[name] = engine
        run_script(plugin_dir / "init.py", plugin_name=name, plugin_path=plugin_dir, **script_globals_for(engine))
        loaded.append(name)
    if loaded:
        logger.info(f"Engine '{engine.engine_name}' loaded plugins: {', '.join(loaded)}")
    return loaded
