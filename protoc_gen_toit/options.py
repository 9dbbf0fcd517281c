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
"""Parsing of the parameters passed to the plugin by protoc.

Parameters arrive through `--toit_opt` as `key=value` pairs separated by
semicolons, for example:

    constructor_initializers=true;import_library=pkg/=my.lib,other/=.
"""

from dataclasses import dataclass, field
import logging

from protoc_gen_toit.errors import MalformedParameterError

_LOG = logging.getLogger(__name__)

# Adds optional named initializers for all fields to default constructors.
CONSTRUCTOR_INITIALIZERS_PARAM = 'constructor_initializers'
# Comma separated prefix=library pairs rewriting import paths.
IMPORT_LIBRARY_PARAM = 'import_library'
# Generates hook methods to customize how field values are read and written.
CONVERT_HOOKS_PARAM = 'convert_hooks'
# Maps google.protobuf.Duration and Timestamp onto the core Toit types.
CORE_OBJECTS_PARAM = 'core_objects'

_TRUE_VALUES = frozenset(('1', 't', 'T', 'TRUE', 'true', 'True'))
_FALSE_VALUES = frozenset(('0', 'f', 'F', 'FALSE', 'false', 'False'))


@dataclass
class GeneratorOptions:
    constructor_initializers: bool = False
    convert_hooks: bool = False
    core_objects: bool = True
    import_libraries: dict[str, str] = field(default_factory=dict)


def parse_map(
    value: str, group_separator: str, kv_separator: str
) -> dict[str, str]:
    """Splits "k1=v1<sep>k2=v2" into a dict, dropping entries with no value."""
    result: dict[str, str] = {}
    for group in value.split(group_separator):
        parts = group.split(kv_separator, 1)
        if len(parts) > 1:
            result[parts[0]] = parts[1]
    return result


def parse_bool(name: str, value: str) -> bool:
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise MalformedParameterError(
        f"failed to parse '{name}' option: {value!r} is not a boolean"
    )


def parse_generator_options(parameter: str) -> GeneratorOptions:
    """Builds GeneratorOptions from the raw protoc parameter string.

    Raises:
      MalformedParameterError: A boolean option has an invalid value.
    """
    params = parse_map(parameter, ';', '=')
    options = GeneratorOptions()

    for name, value in params.items():
        if name == CONSTRUCTOR_INITIALIZERS_PARAM:
            options.constructor_initializers = parse_bool(name, value)
        elif name == CONVERT_HOOKS_PARAM:
            options.convert_hooks = parse_bool(name, value)
        elif name == CORE_OBJECTS_PARAM:
            options.core_objects = parse_bool(name, value)
        elif name == IMPORT_LIBRARY_PARAM:
            options.import_libraries = parse_map(value, ',', '=')
        else:
            _LOG.debug('Ignoring unknown parameter %s', name)

    return options
