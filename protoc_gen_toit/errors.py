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
"""Errors raised while generating Toit code from a protobuf request.

Every error is fatal for the whole run: the request is a single snapshot of a
schema, so running again with the same input would fail the same way.
"""


class CodegenError(Exception):
    """Base class for all code generation failures."""

    def __init__(
        self,
        error_message: str,
        type_name: str | None = None,
        field: str | None = None,
    ):
        super().__init__(f'toit codegen error: {error_message}')
        self.error_message = error_message
        self.type_name = type_name
        self.field = field

    def formatted_message(self) -> str:
        lines = [f'toit codegen error: {self.error_message}']

        if self.type_name is not None:
            lines.append(f'    at {self.type_name}')

        if self.field is not None:
            lines.append(f'    in field {self.field}')

        return '\n'.join(lines)


class UnresolvedTypeError(CodegenError):
    """A field references a type which is not in the registry."""


class NameCollisionError(CodegenError):
    """Two generated identifiers in one scope cannot be made unique."""


class UnsupportedKindError(CodegenError):
    """A field type or label which cannot be classified."""


class MalformedParameterError(CodegenError):
    """A plugin parameter could not be parsed."""
