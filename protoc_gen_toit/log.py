# Copyright 2024 The Pigweed Authors
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may not
# use this file except in compliance with the License. You may obtain a copy of
# the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations under
# the License.
"""Tools for configuring Python logging in the plugin.

protoc reads the generated response from the plugin's stdout, so all logs go
to stderr, which protoc passes through to the user.
"""

import logging
import os
from typing import Mapping, NamedTuple

from protoc_gen_toit.errors import MalformedParameterError

# Environment variable selecting the log level, e.g. DEBUG.
LOG_LEVEL_ENV = 'PROTOC_GEN_TOIT_LOG_LEVEL'
DEFAULT_LOG_LEVEL = logging.WARNING


class _LogLevel(NamedTuple):
    level: int
    ascii: str


# Shorten all the log levels to 3 characters for column-aligned logs.
_LOG_LEVELS = (
    _LogLevel(logging.CRITICAL, 'CRT'),
    _LogLevel(logging.ERROR, 'ERR'),
    _LogLevel(logging.WARNING, 'WRN'),
    _LogLevel(logging.INFO, 'INF'),
    _LogLevel(logging.DEBUG, 'DBG'),
)

_STDERR_HANDLER = logging.StreamHandler()


def log_level(arg: str) -> int:
    """Converts a level name such as 'debug' to a logging level.

    Raises:
      MalformedParameterError: arg does not name a logging level.
    """
    level = getattr(logging, arg.upper(), None)
    if not isinstance(level, int):
        raise MalformedParameterError(
            f'"{arg.upper()}" is not a valid log level'
        )
    return level


def level_from_environment(environ: Mapping[str, str] | None = None) -> int:
    """Returns the log level configured through the environment."""
    if environ is None:
        environ = os.environ
    value = environ.get(LOG_LEVEL_ENV)
    if not value:
        return DEFAULT_LOG_LEVEL
    return log_level(value)


def install(level: int = DEFAULT_LOG_LEVEL) -> None:
    """Configures the root logger to write to stderr at level."""
    formatter = logging.Formatter('%(levelname)s %(name)s: %(message)s')

    _STDERR_HANDLER.setLevel(level)
    _STDERR_HANDLER.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    if _STDERR_HANDLER not in root.handlers:
        root.addHandler(_STDERR_HANDLER)

    for short_level in _LOG_LEVELS:
        logging.addLevelName(short_level.level, short_level.ascii)
