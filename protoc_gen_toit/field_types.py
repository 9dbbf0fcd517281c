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
"""Classification of message fields.

Every field is one of four kinds, which decides how it is declared, decoded,
encoded and sized in the generated code:

  PrimitiveField: scalars, strings, bytes and enums.
  ObjectField:    an embedded message.
  ListField:      a repeated field; carries the classification of an element.
  MapField:       a repeated map entry; carries the key and value.
"""

from dataclasses import dataclass
import enum
from typing import Union, cast

from google.protobuf import descriptor_pb2

from protoc_gen_toit.errors import UnsupportedKindError
from protoc_gen_toit.proto_tree import ProtoMessage, ProtoNode, TypeRegistry

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto

CORE_DURATION_MESSAGE = '.google.protobuf.Duration'
CORE_TIMESTAMP_MESSAGE = '.google.protobuf.Timestamp'

_WIRE_TYPE_CONSTANTS = {
    FieldDescriptorProto.TYPE_DOUBLE: 'PROTOBUF_TYPE_DOUBLE',
    FieldDescriptorProto.TYPE_FLOAT: 'PROTOBUF_TYPE_FLOAT',
    FieldDescriptorProto.TYPE_INT64: 'PROTOBUF_TYPE_INT64',
    FieldDescriptorProto.TYPE_SINT64: 'PROTOBUF_TYPE_SINT64',
    FieldDescriptorProto.TYPE_SFIXED64: 'PROTOBUF_TYPE_SFIXED64',
    FieldDescriptorProto.TYPE_FIXED64: 'PROTOBUF_TYPE_FIXED64',
    FieldDescriptorProto.TYPE_UINT64: 'PROTOBUF_TYPE_UINT64',
    FieldDescriptorProto.TYPE_UINT32: 'PROTOBUF_TYPE_UINT32',
    FieldDescriptorProto.TYPE_INT32: 'PROTOBUF_TYPE_INT32',
    FieldDescriptorProto.TYPE_SINT32: 'PROTOBUF_TYPE_SINT32',
    FieldDescriptorProto.TYPE_SFIXED32: 'PROTOBUF_TYPE_SFIXED32',
    FieldDescriptorProto.TYPE_FIXED32: 'PROTOBUF_TYPE_FIXED32',
    FieldDescriptorProto.TYPE_BOOL: 'PROTOBUF_TYPE_BOOL',
    FieldDescriptorProto.TYPE_STRING: 'PROTOBUF_TYPE_STRING',
    FieldDescriptorProto.TYPE_MESSAGE: 'PROTOBUF_TYPE_MESSAGE',
    FieldDescriptorProto.TYPE_ENUM: 'PROTOBUF_TYPE_ENUM',
    FieldDescriptorProto.TYPE_BYTES: 'PROTOBUF_TYPE_BYTES',
}


class WellKnownType(enum.Enum):
    """Core messages which map onto Toit core library types."""

    DURATION = CORE_DURATION_MESSAGE
    TIMESTAMP = CORE_TIMESTAMP_MESSAGE


@dataclass(frozen=True)
class PrimitiveField:
    field: FieldDescriptorProto
    # Set for enum fields.
    type_node: ProtoNode | None = None


@dataclass(frozen=True)
class ObjectField:
    field: FieldDescriptorProto
    type_node: ProtoMessage


@dataclass(frozen=True)
class ListField:
    field: FieldDescriptorProto
    element: 'FieldType'
    type_node: ProtoNode | None = None


@dataclass(frozen=True)
class MapField:
    field: FieldDescriptorProto
    type_node: ProtoMessage
    key: 'FieldType'
    value: 'FieldType'


FieldType = Union[PrimitiveField, ObjectField, ListField, MapField]


def wire_type_constant(field: FieldDescriptorProto) -> str:
    """Returns the runtime library constant for a field's protobuf type."""
    try:
        return _WIRE_TYPE_CONSTANTS[field.type]
    except KeyError:
        raise UnsupportedKindError(
            f'unsupported protobuf type {field.type}', field=field.name
        ) from None


def well_known_type(
    field_type: 'FieldType', core_objects: bool
) -> WellKnownType | None:
    """Returns the core type an object field is mapped onto, if any."""
    if not core_objects or not isinstance(field_type, ObjectField):
        return None

    match field_type.type_node.proto_path():
        case WellKnownType.DURATION.value:
            return WellKnownType.DURATION
        case WellKnownType.TIMESTAMP.value:
            return WellKnownType.TIMESTAMP
    return None


def classify(
    field: FieldDescriptorProto,
    registry: TypeRegistry,
    suppress_repeat: bool = False,
) -> FieldType:
    """Determines the kind of a message field.

    Args:
      field: the field descriptor to classify.
      registry: all types of the request, used to resolve type names.
      suppress_repeat: classify a repeated field as a single element. Used to
        find the element kind of a list.

    Raises:
      UnresolvedTypeError: The field's type is not in the registry.
      UnsupportedKindError: The field's label or type cannot be handled.
    """
    type_node: ProtoNode | None = None
    if field.type in (
        FieldDescriptorProto.TYPE_MESSAGE,
        FieldDescriptorProto.TYPE_ENUM,
    ):
        type_node = registry.lookup(field.type_name, field=field.name)

    label = field.label
    if suppress_repeat and label == FieldDescriptorProto.LABEL_REPEATED:
        label = FieldDescriptorProto.LABEL_REQUIRED

    if label in (
        FieldDescriptorProto.LABEL_OPTIONAL,
        FieldDescriptorProto.LABEL_REQUIRED,
    ):
        if field.type == FieldDescriptorProto.TYPE_MESSAGE:
            return ObjectField(field, _as_message(type_node, field))
        if field.type == FieldDescriptorProto.TYPE_GROUP:
            raise UnsupportedKindError(
                'groups are not supported', field=field.name
            )
        return PrimitiveField(field, type_node)

    if label != FieldDescriptorProto.LABEL_REPEATED:
        raise UnsupportedKindError(
            f'unknown field label {field.label}', field=field.name
        )

    if field.type != FieldDescriptorProto.TYPE_MESSAGE or not (
        _as_message(type_node, field).is_map_entry()
    ):
        element = classify(field, registry, suppress_repeat=True)
        return ListField(field, element, type_node)

    entry = _as_message(type_node, field)
    key, value = entry.map_fields()
    if key is None or value is None or len(entry.descriptor().field) != 2:
        raise UnsupportedKindError(
            'map entry must have exactly a key and a value field',
            entry.proto_path(),
            field.name,
        )

    return MapField(
        field,
        entry,
        classify(key, registry),
        classify(value, registry),
    )


def _as_message(
    type_node: ProtoNode | None, field: FieldDescriptorProto
) -> ProtoMessage:
    if type_node is None or type_node.type() != ProtoNode.Type.MESSAGE:
        raise UnsupportedKindError(
            f'field type {field.type_name} is not a message',
            field.type_name,
            field.name,
        )
    return cast(ProtoMessage, type_node)
