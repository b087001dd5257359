import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .logging import get_logger
from .models import FilePriority


LOG = get_logger(__name__)

CONFIG_DIR = Path(os.environ.get("TORWATCH_CONFIG_DIR", "~/.config/torwatch")).expanduser()
CONFIG_FILE = CONFIG_DIR / "config.yaml"


@dataclass
class RpcConfig:
    host: str = os.environ.get("TORWATCH_HOST", "localhost")
    port: int = int(os.environ.get("TORWATCH_PORT", "9091"))
    username: str | None = os.environ.get("TORWATCH_USER") or None
    password: str | None = os.environ.get("TORWATCH_PASSWORD") or None
    timeout: float = float(os.environ.get("TORWATCH_TIMEOUT", "10.0"))
    retries: int = 2
    backoff: float = 0.6


@dataclass
class PathConfig:
    download_dir: Path = Path(os.environ.get("TORWATCH_DOWNLOAD_DIR", "~/Downloads/torrents")).expanduser()
    config_dir: Path = CONFIG_DIR


@dataclass
class StreamConfig:
    poll_interval: float = float(os.environ.get("TORWATCH_POLL_INTERVAL", "2.0"))
    retry_delay: float = 3.0


@dataclass
class CommandConfig:
    # engine failures are only logged unless this is set
    surface_failures: bool = os.environ.get("TORWATCH_SURFACE_FAILURES", "false").lower() in {"1", "true", "yes"}


@dataclass
class UIConfig:
    default_priority: FilePriority = FilePriority.NORMAL


@dataclass
class AppConfig:
    rpc: RpcConfig = field(default_factory=RpcConfig)
    paths: PathConfig = field(default_factory=PathConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    commands: CommandConfig = field(default_factory=CommandConfig)
    ui: UIConfig = field(default_factory=UIConfig)


def _priority(value: Any, default: FilePriority) -> FilePriority:
    if isinstance(value, FilePriority):
        return value
    try:
        return FilePriority[str(value).strip().upper()]
    except KeyError:
        LOG.warning("Unknown priority %r in config, using %s", value, default.name)
        return default


def _number(value: Any, default: float, cast=float, minimum: float | None = None):
    try:
        result = cast(value)
    except (TypeError, ValueError):
        LOG.warning("Invalid number %r in config, using %s", value, default)
        return default
    if minimum is not None and result < minimum:
        LOG.warning("Value %r below %s in config, using %s", value, minimum, default)
        return default
    return result


def load_config(path: Optional[Path] = None) -> AppConfig:
    target = path or CONFIG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        data = yaml.safe_load(target.read_text()) or {}
    else:
        data = {}

    rpc_data: Dict[str, Any] = data.get("rpc") or {}
    paths_data: Dict[str, Any] = data.get("paths") or {}
    stream_data: Dict[str, Any] = data.get("stream") or {}
    commands_data: Dict[str, Any] = data.get("commands") or {}
    ui_data: Dict[str, Any] = data.get("ui") or {}

    config = AppConfig(
        rpc=RpcConfig(
            host=rpc_data.get("host") or RpcConfig().host,
            port=_number(rpc_data.get("port", RpcConfig().port), RpcConfig().port, int, 1),
            username=rpc_data.get("username") or RpcConfig().username,
            password=rpc_data.get("password") or RpcConfig().password,
            timeout=_number(rpc_data.get("timeout", RpcConfig().timeout), RpcConfig().timeout, float, 0.1),
            retries=_number(rpc_data.get("retries", RpcConfig().retries), RpcConfig().retries, int, 0),
            backoff=_number(rpc_data.get("backoff", RpcConfig().backoff), RpcConfig().backoff, float, 0.0),
        ),
        paths=PathConfig(
            download_dir=Path(paths_data.get("download_dir", PathConfig().download_dir)).expanduser(),
            config_dir=Path(paths_data.get("config_dir", PathConfig().config_dir)).expanduser(),
        ),
        stream=StreamConfig(
            poll_interval=_number(
                stream_data.get("poll_interval", StreamConfig().poll_interval), StreamConfig().poll_interval, float, 0.1
            ),
            retry_delay=_number(
                stream_data.get("retry_delay", StreamConfig().retry_delay), StreamConfig().retry_delay, float, 0.0
            ),
        ),
        commands=CommandConfig(
            surface_failures=bool(commands_data.get("surface_failures", CommandConfig().surface_failures)),
        ),
        ui=UIConfig(
            default_priority=_priority(ui_data.get("default_priority", UIConfig().default_priority.name), UIConfig().default_priority),
        ),
    )

    save_config(config, target)
    return config


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = path or CONFIG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "rpc": {
            "host": config.rpc.host,
            "port": config.rpc.port,
            "username": config.rpc.username or "",
            "password": config.rpc.password or "",
            "timeout": config.rpc.timeout,
            "retries": config.rpc.retries,
            "backoff": config.rpc.backoff,
        },
        "paths": {
            "download_dir": str(config.paths.download_dir),
            "config_dir": str(config.paths.config_dir),
        },
        "stream": {
            "poll_interval": config.stream.poll_interval,
            "retry_delay": config.stream.retry_delay,
        },
        "commands": {
            "surface_failures": config.commands.surface_failures,
        },
        "ui": {
            "default_priority": config.ui.default_priority.name,
        },
    }
    target.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=False))
