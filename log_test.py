#!/usr/bin/env python3
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
"""Tests for the plugin's logging setup."""

import logging
import unittest

from protoc_gen_toit import log
from protoc_gen_toit.errors import MalformedParameterError


class TestLogLevel(unittest.TestCase):
    """Tests for reading the log level."""

    def test_level_names(self) -> None:
        self.assertEqual(log.log_level('debug'), logging.DEBUG)
        self.assertEqual(log.log_level('Error'), logging.ERROR)

    def test_invalid_level(self) -> None:
        with self.assertRaises(MalformedParameterError):
            log.log_level('loud')

    def test_non_level_attribute(self) -> None:
        with self.assertRaises(MalformedParameterError):
            log.log_level('basic_format')

    def test_environment_default(self) -> None:
        self.assertEqual(log.level_from_environment({}), logging.WARNING)

    def test_environment_level(self) -> None:
        self.assertEqual(
            log.level_from_environment({log.LOG_LEVEL_ENV: 'info'}),
            logging.INFO,
        )


class TestInstall(unittest.TestCase):
    """Tests for installing the stderr handler."""

    def setUp(self) -> None:
        root = logging.getLogger()
        self._root_level = root.level
        self._level_names = {
            level: logging.getLevelName(level)
            for level in (
                logging.CRITICAL,
                logging.ERROR,
                logging.WARNING,
                logging.INFO,
                logging.DEBUG,
            )
        }

    def tearDown(self) -> None:
        root = logging.getLogger()
        # pylint: disable-next=protected-access
        root.removeHandler(log._STDERR_HANDLER)
        root.setLevel(self._root_level)
        for level, name in self._level_names.items():
            logging.addLevelName(level, name)

    def test_install(self) -> None:
        log.install(logging.INFO)
        log.install(logging.INFO)

        root = logging.getLogger()
        self.assertEqual(root.level, logging.INFO)
        self.assertEqual(
            root.handlers.count(
                log._STDERR_HANDLER  # pylint: disable=protected-access
            ),
            1,
        )
        self.assertEqual(logging.getLevelName(logging.WARNING), 'WRN')
        self.assertEqual(logging.getLevelName(logging.DEBUG), 'DBG')


if __name__ == '__main__':
    unittest.main()
