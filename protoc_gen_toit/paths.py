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
"""Naming and path helpers for generated Toit files."""

import posixpath
import re
from typing import Container

PROTO_EXTENSION = '.proto'
TOIT_EXTENSION = '.toit'
GENERATED_SUFFIX = '_pb' + TOIT_EXTENSION

# Identifiers which cannot be used as member names in a Toit class.
RESERVED_FIELD_NAMES = frozenset(
    ('operator', 'static', 'class', 'constructor', 'interface')
)

_ACRONYM_BOUNDARY_RE = re.compile(r'([A-Z]+)([A-Z][a-z])')
_WORD_BOUNDARY_RE = re.compile(r'([a-z0-9])([A-Z])')
_NON_IDENTIFIER_RE = re.compile(r'[^A-Za-z0-9_]')


def proto_to_file(proto_file: str) -> str:
    """Returns the generated file name for a .proto file.

    Names without the .proto extension are returned unchanged.
    """
    if proto_file.endswith(PROTO_EXTENSION):
        return proto_file[: -len(PROTO_EXTENSION)] + GENERATED_SUFFIX
    return proto_file


def to_snake_case(name: str) -> str:
    name = _NON_IDENTIFIER_RE.sub('_', name)
    name = _ACRONYM_BOUNDARY_RE.sub(r'\1_\2', name)
    name = _WORD_BOUNDARY_RE.sub(r'\1_\2', name)
    return name.lower()


def file_import_alias(proto_file: str) -> str:
    """Returns the import alias for a file, e.g. a/fooBar.proto -> _foo_bar."""
    base = posixpath.basename(proto_file)
    stem, _ = posixpath.splitext(base)
    return to_snake_case('_' + stem)


def toit_path(path: str) -> str:
    """Converts a file system path into a Toit import path.

    Relative paths get a leading dot, and each '../' adds one more:

        foo/bar.toit     -> .foo.bar
        ../../foo.toit   -> ...foo
        /abs/foo.toit    -> abs.foo
    """
    path = posixpath.normpath(path)
    if posixpath.isabs(path):
        path = path[1:]
    else:
        path = '.' + path.replace('../', '.')

    if path.endswith(TOIT_EXTENSION):
        path = path[: -len(TOIT_EXTENSION)]

    return path.replace('/', '.')


def rel_toit_path(from_file: str, to_file: str) -> str:
    """Import path of to_file, relative to the directory of from_file.

    Both paths are relative to the same generated output root.
    """
    levels_up = from_file.count('/')
    return toit_path('../' * levels_up + to_file)


def unique_name(name: str, namespace: Container[str], prefix: str = '_') -> str:
    """Prepends prefix to name until it is not in namespace."""
    while name in namespace:
        name = prefix + name
    return name
