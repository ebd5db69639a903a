import logging
import sys
import os
from datetime import datetime

import services.util as u

# ANSI colour codes
COLORS = {
    'DBG': '\033[36m',
    'INF': '\033[32m',
    'WRN': '\033[33m',
    'ERR': '\033[31m',
    'CRT': '\033[91m\033[1m',
    'RST': '\033[0m'
}

IS_TTY = sys.stdout.isatty()

LOG_DIR = u.get_env('PREVIEW_BOT_LOG_DIR') or "logs"
os.makedirs(LOG_DIR, exist_ok=True)

# e.g. 20250915-150316061.log
_log_filename = datetime.now().strftime("%Y%m%d-%H%M%S%f")[:-3] + ".log"
LOG_FILE_PATH = os.path.join(LOG_DIR, _log_filename)


# Passwords and access tokens that must never reach a log line.
# Populated by register_sensitive() once the config is loaded.
_sensitive: set[str] = set()


def register_sensitive(values: frozenset[str]) -> None:
    """Register secret strings that must never appear in log output."""
    _sensitive.clear()
    # Short values would mask ordinary words
    _sensitive.update(v for v in values if len(v) >= 8)


class MaskingFilter(logging.Filter):
    """Replaces registered secrets with ``***`` before a record is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        if _sensitive:
            msg = record.getMessage()
            for secret in _sensitive:
                if secret in msg:
                    msg = msg.replace(secret, "***")
            record.msg = msg
            record.args = ()
        return True


class CustomFormatter(logging.Formatter):
    replaces = {
        'DEBUG': '[DBG]',
        'INFO': '[INF]',
        'WARNING': '[WRN]',
        'ERROR': '[ERR]',
        'CRITICAL': '[CRT]'
    }

    def format(self, record):
        timestamp = datetime.now().strftime('[%Y-%m-%d %H:%M:%S]')
        level = self.replaces.get(record.levelname, f'[{record.levelname}]')
        color_key = level[1:4]

        if IS_TTY and color_key in COLORS:
            level = COLORS[color_key] + level + COLORS['RST']

        try:
            file = os.path.relpath(record.pathname)
        except ValueError:
            file = record.pathname

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{timestamp} {level} | {file}:{record.lineno} | {message}"


logger = logging.getLogger('previewbot')
logger.setLevel(logging.DEBUG)

# Re-imports must not stack handlers
if logger.handlers:
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
logger.propagate = False

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setFormatter(CustomFormatter())
console_handler.setLevel(logging.INFO)
console_handler.addFilter(MaskingFilter())
logger.addHandler(console_handler)

file_handler = logging.FileHandler(LOG_FILE_PATH, encoding='utf-8')
file_formatter = logging.Formatter(
    '[%(asctime)s] [%(levelname)s] | %(filename)s:%(lineno)d | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
file_handler.setFormatter(file_formatter)
file_handler.setLevel(logging.DEBUG)
file_handler.addFilter(MaskingFilter())
logger.addHandler(file_handler)

# matrix-nio logs through its own loggers; route warnings into our handlers
for _name in ("nio", "aiohttp"):
    _ext = logging.getLogger(_name)
    _ext.setLevel(logging.WARNING)
    _ext.addHandler(file_handler)


def get_logger(name=None):
    """Return the shared bot logger (one instance for every module)."""
    return logger
