import argparse
import logging
from typing import Sequence

import uvicorn

from .config import env_var_as_bool, load_config, resolve_config_path
from .errors import ConfigError
from .logging_config import configure_logging
from .server import create_app

logger = logging.getLogger("nostream")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="nostream",
        description="OpenAI-compatible gateway with emulated streaming",
    )
    parser.add_argument("--config", default=None, help="path to a .toml or .yaml config file")
    parser.add_argument("--host", default=None, help="override app.host")
    parser.add_argument("--port", default=None, type=int, help="override app.port")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    path = resolve_config_path(args.config)
    try:
        config = load_config(path)
    except ConfigError as exc:
        configure_logging("info")
        logger.error("config.load_failed path=%s error=%s", path, exc)
        return 1

    level = "debug" if env_var_as_bool("NOSTREAM_DEBUG") else config.logging.level
    configure_logging(level)
    host = args.host or config.app.host
    port = args.port or config.app.port
    logger.info(
        "config.loaded path=%s host=%s port=%d log_level=%s providers=%d",
        path,
        host,
        port,
        level,
        len(config.providers),
    )
    app = create_app(config)
    uvicorn.run(app, host=host, port=port, log_level="warning" if level != "debug" else "debug")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
