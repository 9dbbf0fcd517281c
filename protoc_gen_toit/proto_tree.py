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
"""This module defines the registry of protobuf types across a request."""

import abc
import enum
import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from google.protobuf import descriptor_pb2

from protoc_gen_toit.errors import UnresolvedTypeError

_LOG = logging.getLogger(__name__)


class ProtoNode(abc.ABC):
    """A message or enum declared somewhere in the request.

    Nodes remember the file that declares them and the message they are nested
    in, if any. Their identity is their fully-qualified proto path, for example
    ".pkg.Outer.Inner", which is the form protoc uses for field type names.
    """

    class Type(enum.Enum):
        MESSAGE = 1
        ENUM = 2

    def __init__(
        self,
        file: descriptor_pb2.FileDescriptorProto,
        parent: 'ProtoMessage | None',
    ):
        self._file = file
        self._parent = parent

    @abc.abstractmethod
    def type(self) -> 'ProtoNode.Type':
        """The type of the node."""

    @abc.abstractmethod
    def descriptor(
        self,
    ) -> descriptor_pb2.DescriptorProto | descriptor_pb2.EnumDescriptorProto:
        """The raw descriptor of the node."""

    def name(self) -> str:
        return self.descriptor().name

    def file(self) -> descriptor_pb2.FileDescriptorProto:
        return self._file

    def parent(self) -> 'ProtoMessage | None':
        return self._parent

    def enclosing_chain(self) -> list[str]:
        """Names of the enclosing messages, outermost first."""
        chain = []
        node = self._parent
        while node is not None:
            chain.append(node.name())
            node = node.parent()
        return list(reversed(chain))

    def proto_path(self) -> str:
        """Fully-qualified name of the node, with a leading dot."""
        parts = self.enclosing_chain() + [self.name()]
        if self._file.package:
            parts.insert(0, self._file.package)
        return '.' + '.'.join(parts)

    def toit_name(self, import_alias: str = '') -> str:
        """Name of the node's Toit class or constant prefix.

        Toit does not nest classes, so nested types are joined with '_'.
        """
        name = '_'.join(self.enclosing_chain() + [self.name()])
        if not import_alias:
            return name
        return f'{import_alias}.{name}'

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.proto_path()!r})'


class ProtoMessage(ProtoNode):
    """Representation of a message in a .proto file."""

    def __init__(
        self,
        file: descriptor_pb2.FileDescriptorProto,
        parent: 'ProtoMessage | None',
        descriptor: descriptor_pb2.DescriptorProto,
    ):
        super().__init__(file, parent)
        self._descriptor = descriptor

    def type(self) -> ProtoNode.Type:
        return ProtoNode.Type.MESSAGE

    def descriptor(self) -> descriptor_pb2.DescriptorProto:
        return self._descriptor

    def is_map_entry(self) -> bool:
        return self._descriptor.options.map_entry

    def map_fields(
        self,
    ) -> tuple[
        descriptor_pb2.FieldDescriptorProto | None,
        descriptor_pb2.FieldDescriptorProto | None,
    ]:
        """Returns the (key, value) fields of a map entry message."""
        fields = {field.number: field for field in self._descriptor.field}
        return fields.get(1), fields.get(2)


class ProtoEnum(ProtoNode):
    """Representation of an enum in a .proto file."""

    def __init__(
        self,
        file: descriptor_pb2.FileDescriptorProto,
        parent: ProtoMessage | None,
        descriptor: descriptor_pb2.EnumDescriptorProto,
    ):
        super().__init__(file, parent)
        self._descriptor = descriptor

    def type(self) -> ProtoNode.Type:
        return ProtoNode.Type.ENUM

    def descriptor(self) -> descriptor_pb2.EnumDescriptorProto:
        return self._descriptor

    def values(self) -> list[tuple[str, int]]:
        return [(value.name, value.number) for value in self._descriptor.value]


class TypeRegistry:
    """All messages and enums of a request, keyed by fully-qualified name.

    The registry is filled once, before any code is generated, since a field
    in one file may reference a type declared in any other file of the
    request. It is not modified afterwards.
    """

    def __init__(self, types: Mapping[str, ProtoNode]):
        self._types = MappingProxyType(dict(types))

    @classmethod
    def build(
        cls, proto_files: Iterable[descriptor_pb2.FileDescriptorProto]
    ) -> 'TypeRegistry':
        types: dict[str, ProtoNode] = {}

        def add(node: ProtoNode) -> None:
            path = node.proto_path()
            if path in types:
                _LOG.warning('Type %s is declared more than once', path)
            types[path] = node

        def add_message(
            proto_file: descriptor_pb2.FileDescriptorProto,
            parent: ProtoMessage | None,
            message: descriptor_pb2.DescriptorProto,
        ) -> None:
            node = ProtoMessage(proto_file, parent, message)
            add(node)
            for proto_enum in message.enum_type:
                add(ProtoEnum(proto_file, node, proto_enum))
            for nested in message.nested_type:
                add_message(proto_file, node, nested)

        for proto_file in proto_files:
            for proto_enum in proto_file.enum_type:
                add(ProtoEnum(proto_file, None, proto_enum))
            for message in proto_file.message_type:
                add_message(proto_file, None, message)

        registry = cls(types)
        _LOG.debug('Registered %d protobuf types', len(registry.types()))
        return registry

    def find(self, proto_path: str) -> ProtoNode | None:
        return self._types.get(proto_path)

    def lookup(self, proto_path: str, field: str | None = None) -> ProtoNode:
        """Returns the node for proto_path.

        Raises:
          UnresolvedTypeError: No type with this name exists in the request.
        """
        node = self.find(proto_path)
        if node is None:
            raise UnresolvedTypeError(
                f'failed to find type {proto_path}', proto_path, field
            )
        return node

    def types(self) -> Mapping[str, ProtoNode]:
        return self._types
