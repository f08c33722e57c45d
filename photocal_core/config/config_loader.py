# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
Loads the yaml configuration of the collection tools and gives access to its values.

Values of the loaded file are layered over DEFAULT_CONFIG so that a config file only needs to contain the keys which
deviate from the defaults. Nested keys are addressed with dots, e.g. get('response.sample_count').
"""

import copy
import logging
from pathlib import Path

import yaml

from photocal_core.config.constants import DEFAULT_CONFIG

_config = copy.deepcopy(DEFAULT_CONFIG)


def _merge(base, update):
    """
    Recursively merge dict `update` into dict `base` (in place).

    :param base: (dict) dict which is updated
    :param update: (dict) dict with the new values
    :return: (dict) updated base
    """
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_file=None, required=True):
    """
    Load a yaml config file and layer it over the defaults.

    :param config_file: (str or Path) path of the yaml file. If None, only the defaults are used.
    :param required: (bool) If False, a missing config file is tolerated and the defaults are used. Default is True.
    :return: (dict) the active configuration
    """
    global _config
    _config = copy.deepcopy(DEFAULT_CONFIG)

    if config_file is None:
        return _config

    config_file = Path(config_file)
    if not config_file.is_file():
        if required:
            raise FileNotFoundError(f'Config file {config_file} not found.')
        logging.info(f'No config file found at {config_file}, using default configuration.')
        return _config

    with open(config_file, 'r') as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f'Config file {config_file} does not contain a mapping.')

    _merge(_config, loaded)
    logging.info(f'Loaded config from {config_file.absolute()}')
    return _config


def get(key, default=None):
    """
    Get a config value.

    :param key: (str) key of the value, nested keys separated by dots
    :param default: value returned if the key is not configured
    :return: configured value
    """
    value = _config
    for part in key.split('.'):
        if not isinstance(value, dict) or part not in value:
            return default
        value = value[part]
    return value


def set_value(key, value):
    """
    Overwrite a config value, e.g. from a command line argument.

    :param key: (str) key of the value, nested keys separated by dots
    :param value: new value
    """
    parts = key.split('.')
    section = _config
    for part in parts[:-1]:
        section = section.setdefault(part, {})
    section[parts[-1]] = value
