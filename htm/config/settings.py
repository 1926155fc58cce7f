"""Process settings for the htm proxy.

Settings is a frozen dataclass built once from command-line flags; there is
no environment-variable layer.
"""

import argparse
from dataclasses import dataclass
from typing import Optional

from htm.config.routes import DEFAULT_CONFIG_PATH


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    config_path: str = DEFAULT_CONFIG_PATH
    connect_timeout: float = 10.0
    max_concurrent: int = 0  # 0 = unlimited
    admin_port: Optional[int] = None  # None = admin app disabled
    log_level: str = "INFO"


def parse_args(argv: Optional[list[str]] = None) -> Settings:
    parser = argparse.ArgumentParser(
        prog="htm",
        description="Name-based HTTP reverse proxy.",
    )
    parser.add_argument("--port", type=int, default=Settings.port, help="port to serve on")
    parser.add_argument("--config", dest="config_path", default=Settings.config_path, help="configuration file")
    parser.add_argument("--host", default=Settings.host, help="address to bind")
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=Settings.connect_timeout,
        help="seconds allowed for connecting to an upstream",
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=Settings.max_concurrent,
        help="shed requests beyond this many in flight (0 disables)",
    )
    parser.add_argument(
        "--admin-port",
        type=int,
        default=None,
        help="serve /__health, /__routes and /__metrics on this port",
    )
    parser.add_argument("--log-level", default=Settings.log_level, help="logging level")

    args = parser.parse_args(argv)
    return Settings(**vars(args))
