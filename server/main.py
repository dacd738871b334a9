"""Voice Relay: Server entry point.

Loads and checks config, applies environment overrides, and starts the
uvicorn server. ``PORT`` and ``OPENROUTER_MODEL`` take precedence over
the config file; command-line flags take precedence over both.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn
import yaml

from server.app import create_app
from server.errors import ConfigError

log = logging.getLogger(__name__)

DEFAULT_PORT = 3000
_SECTIONS = ("server", "llm", "conversation", "metrics")


def load_config(path: str | None = None) -> dict:
    """Load server config from YAML file."""
    if path is None:
        # Default: server/config.yaml relative to this file
        path = str(Path(__file__).parent / "config.yaml")

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {path} is not valid YAML: {exc}") from exc
    if not isinstance(config, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return config


def apply_env_overrides(config: dict, environ=None) -> dict:
    environ = os.environ if environ is None else environ
    if environ.get("PORT"):
        config.setdefault("server", {})["port"] = environ["PORT"]
    if environ.get("OPENROUTER_MODEL"):
        config.setdefault("llm", {})["model"] = environ["OPENROUTER_MODEL"]
    return config


def check_config(config: dict) -> dict:
    """Fill in empty sections, require the completion endpoint and coerce the port.

    Raises ConfigError describing the first problem found.
    """
    for section in _SECTIONS:
        value = config.get(section) or {}
        if not isinstance(value, dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")
        config[section] = value

    missing = [key for key in ("model", "api_base") if not config["llm"].get(key)]
    if missing:
        raise ConfigError("Missing llm settings: " + ", ".join(missing))

    port = config["server"].get("port", DEFAULT_PORT)
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ConfigError(f"server.port is not a number: {port!r}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"server.port out of range: {port}")
    config["server"]["port"] = port
    return config


def main():
    parser = argparse.ArgumentParser(description="Voice Relay Server")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--host", type=str, default=None, help="Bind host (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (overrides config and PORT)")
    parser.add_argument("--log-level", default="info",
                        choices=["debug", "info", "warning", "error"], help="Log verbosity")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = check_config(apply_env_overrides(load_config(args.config)))
    except ConfigError as e:
        print(f"\033[31m{e}\033[0m")
        sys.exit(1)

    server_cfg = config["server"]
    host = args.host or server_cfg.get("host", "0.0.0.0")
    port = args.port or server_cfg["port"]

    app = create_app(config)

    log.info("Model %s via %s", config["llm"]["model"], config["llm"]["api_base"])
    print(f"\033[32mVoice relay starting on ws://{host}:{port}/ws\033[0m")
    uvicorn.run(app, host=host, port=port, log_level=args.log_level)


if __name__ == "__main__":
    main()
