from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import physics
import table_setup

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BILLIARDS_CONFIG"


def default_data_dir() -> Path:
    """Return the default data directory path (~/.canvas_billiards)."""
    return Path.home() / ".canvas_billiards"


def default_config_path() -> Path:
    """Return the config path from $BILLIARDS_CONFIG or ~/.canvas_billiards/config.json."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return default_data_dir() / "config.json"


@dataclass
class TableConfig:
    table_width: float = physics.TABLE_WIDTH
    table_height: float = physics.TABLE_HEIGHT
    ball_radius: float = physics.BALL_RADIUS
    pocket_radius: float = physics.POCKET_RADIUS
    friction: float = physics.FRICTION
    stop_speed: float = physics.STOP_SPEED


@dataclass
class ShotConfig:
    max_power: float = 20.0
    power_rate: float = 0.2  # added per frame while aiming
    aim_line_base: float = 50.0
    aim_line_scale: float = 5.0


@dataclass
class RackConfig:
    cue_x: float = table_setup.CUE_X
    rows: int = table_setup.RACK_ROWS
    apex_offset: float = table_setup.APEX_OFFSET


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    fps: int = 60


@dataclass
class AppConfig:
    version: str = "1.0.0"
    table: TableConfig = field(default_factory=TableConfig)
    shot: ShotConfig = field(default_factory=ShotConfig)
    rack: RackConfig = field(default_factory=RackConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _known(cls, section: str, data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        logger.warning("Config section %s is not an object, using defaults", section)
        return {}
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        logger.warning("Ignoring unknown %s config keys: %s", section, ", ".join(unknown))
    return {k: v for k, v in data.items() if k in names}


def _config_from_dict(data: dict[str, Any]) -> AppConfig:
    defaults = AppConfig().to_dict()
    merged = _deep_merge(defaults, data)
    return AppConfig(
        version=merged["version"],
        table=TableConfig(**_known(TableConfig, "table", merged["table"])),
        shot=ShotConfig(**_known(ShotConfig, "shot", merged["shot"])),
        rack=RackConfig(**_known(RackConfig, "rack", merged["rack"])),
        server=ServerConfig(**_known(ServerConfig, "server", merged["server"])),
    )


def load_config(path: Path | None = None) -> AppConfig:
    """Load simulation configuration from JSON file.

    Args:
        path: Optional path to config file. Defaults to default_config_path().

    Returns:
        AppConfig instance with loaded or default values.
    """
    config_path = path or default_config_path()
    if not config_path.exists():
        return AppConfig()
    raw = json.loads(config_path.read_text(encoding="utf-8"))
    logger.info("Loaded config from %s", config_path)
    return _config_from_dict(raw)


def save_config(config: AppConfig, path: Path | None = None) -> Path:
    """Save simulation configuration to JSON file.

    Args:
        config: AppConfig instance to save.
        path: Optional path for config file. Defaults to default_config_path().

    Returns:
        Path to the saved config file.
    """
    config_path = path or default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
    return config_path
