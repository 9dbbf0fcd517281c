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
"""Maps imported .proto files to Toit import paths."""

import logging
from typing import Mapping

from protoc_gen_toit import paths

_LOG = logging.getLogger(__name__)

PROTO_LIBRARY = 'protogen'
WELL_KNOWN_TYPES_PREFIX = 'google/protobuf/'


class ImportResolver:
    """Resolves imports through a set of prefix rewrite rules.

    Each rule maps a prefix of an imported .proto path to a Toit library path.
    Imports which match no rule are assumed to be generated into the same
    output tree as the importing file and are referenced relatively.

    The rule for the well-known types is always present; user rules cannot
    replace it.
    """

    def __init__(self, import_libraries: Mapping[str, str] | None = None):
        rules = dict(import_libraries or {})
        if WELL_KNOWN_TYPES_PREFIX in rules:
            _LOG.warning(
                'Ignoring import_library rule for reserved prefix %s',
                WELL_KNOWN_TYPES_PREFIX,
            )
        rules[WELL_KNOWN_TYPES_PREFIX] = f'{PROTO_LIBRARY}.google.protobuf'

        self._prefixes: list[str] = sorted(rules)
        self._libraries: dict[str, str] = rules

    def rules(self) -> list[tuple[str, str]]:
        return [(prefix, self._libraries[prefix]) for prefix in self._prefixes]

    def matching_prefix(self, import_file: str) -> str | None:
        """Returns the longest rule prefix of import_file, if any."""
        matches = [p for p in self._prefixes if import_file.startswith(p)]
        if not matches:
            return None
        return max(matches, key=len)

    def resolve(self, source_file: str, import_file: str) -> str:
        """Returns the Toit import path of import_file, from source_file."""
        generated_file = paths.proto_to_file(import_file)

        prefix = self.matching_prefix(import_file)
        if prefix is None:
            return paths.rel_toit_path(source_file, generated_file)

        library = self._libraries[prefix]
        return library + paths.toit_path(generated_file[len(prefix) :])
