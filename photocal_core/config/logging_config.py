# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

import logging
from pathlib import Path

LOG_FORMAT = '%(levelname)s - %(asctime)s: %(message)s'
LOG_DATEFMT = '%H:%M:%S'


def configure_logging(log_file=None, level=logging.INFO):
    """
    Configure the root logger to log to the console and optionally to a file.

    :param log_file: (str or Path) path of the log file. Parent folders are created. Default is None (console only).
    :param level: logging level of the root logger. Default is logging.INFO.
    """
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT, handlers=handlers, force=True)
