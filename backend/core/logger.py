# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Logging setup for the IAM service.

Levels, handlers and formats live in etc/logging.conf; its ``%(log_file)s``
placeholder is filled with log/app.log under the project root.

    from core.logger import logger
"""

import configparser
import logging
import logging.config
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_LOG_FILE     = _PROJECT_ROOT / "log" / "app.log"
_LOGGING_CONF = _PROJECT_ROOT / "etc" / "logging.conf"


def _configure(conf_path: Path, log_file: Path) -> None:
    log_file.parent.mkdir(exist_ok=True)
    text = conf_path.read_text(encoding="utf-8").replace("%(log_file)s", log_file.as_posix())
    parser = configparser.RawConfigParser()
    parser.read_string(text)
    logging.config.fileConfig(parser, disable_existing_loggers=False)


_configure(_LOGGING_CONF, _LOG_FILE)

logger = logging.getLogger("bankiam")
