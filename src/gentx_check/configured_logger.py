import logging
import os
import sys
import uuid

from typing import Optional, TextIO

# LogLevel type since logging lib doesn't define its own enum/type for it
LogLevel = int

RESET = '\x1b[0m'
LEVEL_COLOURS = {
    logging.DEBUG: '\x1b[2m',
    logging.INFO: '\x1b[34;1m',
    logging.WARNING: '\x1b[33;1m',
    logging.ERROR: '\x1b[31;1m',
    logging.CRITICAL: '\x1b[31;1m',
}


def use_colours(stream: TextIO) -> bool:
    """Colours are only emitted on a terminal and when NO_COLOR is unset."""
    if os.environ.get('NO_COLOR'):
        return False
    isatty = getattr(stream, 'isatty', None)
    return bool(isatty and isatty())


class ColourFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        colour = LEVEL_COLOURS.get(record.levelno)
        if colour is None:
            return super().format(record)
        original = record.levelname
        record.levelname = f'{colour}{original}{RESET}'
        try:
            return super().format(record)
        finally:
            record.levelname = original


def new_logger(
    name: Optional[str] = None,
    level: LogLevel = logging.INFO,
    outfile: Optional[str] = None,
    stderr: Optional[bool] = None,
    colour: Optional[bool] = None,
) -> logging.Logger:
    """
    Create a new configured logger.

    :param name: The name of the logger. Defaults to a unique generated name.
    :param level: The logging level. Defaults to INFO.
    :param outfile: Optional to set. When set, will log to a file instead of stdout.
    :param stderr: Optional to set. If outfile is not set, and stderr is set to True, then will log to stderr instead of stdout.
    :param colour: Force colouring on or off. By default level names are
        coloured only when writing to a terminal and NO_COLOR is not set.
    :return: The configured logger.
    """
    # If name is not specified, create one so that this can be a separate logger.
    if name is None:
        name = f"logger_{uuid.uuid1()}"

    log = logging.getLogger(name)
    log.setLevel(level)
    for handler in list(log.handlers):
        log.removeHandler(handler)

    if outfile is not None:
        handler = logging.FileHandler(outfile)
        colour = False
    elif stderr:
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.StreamHandler(sys.stdout)
    if colour is None:
        colour = use_colours(handler.stream)

    formatter_cls = ColourFormatter if colour else logging.Formatter
    fmt = formatter_cls('[%(asctime)s] %(levelname)s: %(message)s',
                        '%Y-%m-%d %H:%M:%S')
    handler.setLevel(level)
    handler.setFormatter(fmt)

    log.addHandler(handler)
    log.propagate = False

    return log


# package-wide logger, reconfigured by the command line front-end
logger = new_logger("gentx_check")
