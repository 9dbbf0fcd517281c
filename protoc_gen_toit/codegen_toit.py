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
"""This module defines the generated code for Toit protobuf classes.

Each message becomes a class extending the runtime's `Message`, with:

  - its fields as instance variables, oneof groups behind accessors,
  - a default constructor and a `deserialize` constructor,
  - a `serialize` method,
  - `num_fields_set` and `protobuf_size`, which must agree on which fields
    are set: a field counts as set exactly when it is written to the wire.

Enums become groups of integer constants.
"""

from dataclasses import dataclass, field
import logging
from typing import Iterable

from google.protobuf import descriptor_pb2

from protoc_gen_toit import paths
from protoc_gen_toit.errors import (
    CodegenError,
    NameCollisionError,
    UnresolvedTypeError,
    UnsupportedKindError,
)
from protoc_gen_toit.field_types import (
    FieldType,
    ListField,
    MapField,
    ObjectField,
    PrimitiveField,
    WellKnownType,
    classify,
    well_known_type,
    wire_type_constant,
)
from protoc_gen_toit.import_resolver import ImportResolver
from protoc_gen_toit.options import GeneratorOptions
from protoc_gen_toit.proto_tree import (
    ProtoEnum,
    ProtoMessage,
    ProtoNode,
    TypeRegistry,
)
from protoc_gen_toit.toit_writer import ToitWriter

_LOG = logging.getLogger(__name__)

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto

PLUGIN_NAME = 'protoc-gen-toit'

PROTOBUF_ALIAS = '_protobuf'
CORE_ALIAS = '_core'
MESSAGE_BASE_CLASS = f'{PROTOBUF_ALIAS}.Message'
READER_TYPE = f'{PROTOBUF_ALIAS}.Reader'
WRITER_TYPE = f'{PROTOBUF_ALIAS}.Writer'

# Members every generated message class declares.
_GENERATED_MEMBERS = (
    'deserialize',
    'serialize',
    'num_fields_set',
    'protobuf_size',
)
_DESERIALIZE_INTO = 'deserialize_into'

_INT_TYPES = frozenset(
    (
        FieldDescriptorProto.TYPE_INT64,
        FieldDescriptorProto.TYPE_UINT64,
        FieldDescriptorProto.TYPE_INT32,
        FieldDescriptorProto.TYPE_UINT32,
        FieldDescriptorProto.TYPE_FIXED64,
        FieldDescriptorProto.TYPE_FIXED32,
        FieldDescriptorProto.TYPE_SFIXED64,
        FieldDescriptorProto.TYPE_SFIXED32,
        FieldDescriptorProto.TYPE_SINT64,
        FieldDescriptorProto.TYPE_SINT32,
    )
)
_FLOAT_TYPES = frozenset(
    (FieldDescriptorProto.TYPE_DOUBLE, FieldDescriptorProto.TYPE_FLOAT)
)

_WELL_KNOWN_TOIT_TYPES = {
    WellKnownType.DURATION: f'{CORE_ALIAS}.Duration',
    WellKnownType.TIMESTAMP: f'{CORE_ALIAS}.Time',
}
_WELL_KNOWN_DEFAULTS = {
    WellKnownType.DURATION: f'{CORE_ALIAS}.Duration.ZERO',
    WellKnownType.TIMESTAMP: f'{PROTOBUF_ALIAS}.TIME_ZERO_EPOCH',
}
# Suffix of the runtime's deserialize_, serialize_ and size_ helpers.
_WELL_KNOWN_HELPERS = {
    WellKnownType.DURATION: 'duration',
    WellKnownType.TIMESTAMP: 'timestamp',
}


@dataclass
class OneofGroup:
    """Generated names of a oneof declaration.

    The members of a oneof share one storage variable; the case variable
    holds the number of the member that is set, or null.
    """

    proto_path: str
    field_name: str
    case_name: str
    case_getter: str
    clear_function: str
    setter_parameter: str
    # Member accessor names by field number.
    case_fields: dict[int, str] = field(default_factory=dict)

    def case_constant(self, number: int) -> str:
        return self.case_fields[number].upper()


@dataclass(frozen=True)
class _MessageField:
    field_type: FieldType
    # Variable name, or member accessor name for oneof members.
    name: str
    oneof: OneofGroup | None = None

    def number(self) -> int:
        return self.field_type.field.number


class _ClassScope:
    """The member names declared in one generated class."""

    def __init__(self, proto_path: str, generated_members: Iterable[str]):
        self._proto_path = proto_path
        self._names: set[str] = set(generated_members)

    def allocate(self, name: str) -> str:
        """Declares name, prefixed with '_' until it is free."""
        unique = paths.unique_name(
            name, paths.RESERVED_FIELD_NAMES | self._names
        )
        if unique != name:
            _LOG.debug('Renamed %s to %s in %s', name, unique, self._proto_path)
        self._names.add(unique)
        return unique

    def claim(self, name: str) -> str:
        """Declares a name which is derived from an allocated one.

        Raises:
          NameCollisionError: The name is already declared or reserved.
        """
        if name in self._names or name in paths.RESERVED_FIELD_NAMES:
            raise NameCollisionError(
                f'generated name {name} is already declared', self._proto_path
            )
        self._names.add(name)
        return name


@dataclass
class _MessagePlan:
    node: ProtoMessage
    class_name: str
    scope: _ClassScope
    fields: list[_MessageField]
    oneofs: list[OneofGroup]


class Generator:
    """Generates Toit source files from the files of a protoc request.

    All files of the request are registered up front, since fields may refer
    to types declared in any of them.
    """

    def __init__(
        self,
        proto_files: Iterable[descriptor_pb2.FileDescriptorProto],
        options: GeneratorOptions | None = None,
    ):
        self._proto_files = list(proto_files)
        self._options = options if options is not None else GeneratorOptions()
        self._registry = TypeRegistry.build(self._proto_files)
        self._import_resolver = ImportResolver(self._options.import_libraries)
        _LOG.debug('Import rules: %s', self._import_resolver.rules())
        # Import aliases of the file being generated, by .proto file name.
        self._imports: dict[str, str] = {}

    def registry(self) -> TypeRegistry:
        return self._registry

    def generate(self, files_to_generate: Iterable[str]) -> list[ToitWriter]:
        """Generates the requested files, in the order of the request."""
        by_name = {f.name: f for f in self._proto_files}
        return [self.generate_file(by_name[name]) for name in files_to_generate]

    def generate_file(
        self, proto_file: descriptor_pb2.FileDescriptorProto
    ) -> ToitWriter:
        _LOG.debug('Generating Toit code for %s', proto_file.name)
        output = ToitWriter(paths.proto_to_file(proto_file.name))

        output.single_line_comment(
            f'Code generated by {PLUGIN_NAME}. DO NOT EDIT.'
        )
        output.single_line_comment(f'source: {proto_file.name}')
        output.new_line()

        self._imports = {proto_file.name: ''}
        output.import_as('encoding.protobuf', PROTOBUF_ALIAS)
        output.import_as('core', CORE_ALIAS)
        import_names = {PROTOBUF_ALIAS, CORE_ALIAS}
        for dependency in proto_file.dependency:
            alias = paths.unique_name(
                paths.file_import_alias(dependency), import_names
            )
            import_names.add(alias)
            self._imports[dependency] = alias
            output.import_as(
                self._import_resolver.resolve(proto_file.name, dependency),
                alias,
            )
        output.new_line()

        root = f'.{proto_file.package}' if proto_file.package else ''
        for proto_enum in proto_file.enum_type:
            self._write_enum(
                output, self._registry.lookup(f'{root}.{proto_enum.name}')
            )
        for message in proto_file.message_type:
            self._write_message(
                output, self._registry.lookup(f'{root}.{message.name}')
            )

        return output

    def _write_enum(self, output: ToitWriter, node: ProtoNode) -> None:
        assert isinstance(node, ProtoEnum)
        class_name = node.toit_name()

        output.single_line_comment(f'ENUM START: {class_name}')
        for name, number in node.values():
            output.const(
                f'{class_name}_{name}',
                f'int/*enum<{class_name}>*/',
                str(number),
            )
        output.single_line_comment(f'ENUM END: {node.proto_path()}')
        output.new_line()

    def _write_message(self, output: ToitWriter, node: ProtoNode) -> None:
        assert isinstance(node, ProtoMessage)
        proto_path = node.proto_path()
        descriptor = node.descriptor()

        output.single_line_comment(f'MESSAGE START: {proto_path}')
        for proto_enum in descriptor.enum_type:
            self._write_enum(
                output, self._registry.lookup(f'{proto_path}.{proto_enum.name}')
            )
        for nested in descriptor.nested_type:
            if not nested.options.map_entry:
                self._write_message(
                    output, self._registry.lookup(f'{proto_path}.{nested.name}')
                )

        plan = self._plan_message(node)

        output.start_class(plan.class_name, MESSAGE_BASE_CLASS)
        for oneof in plan.oneofs:
            self._write_oneof(output, plan, oneof)

        declared = False
        for message_field in plan.fields:
            if message_field.oneof is None:
                output.variable(
                    message_field.name,
                    self._type_annotation(message_field.field_type),
                    self._default_value(message_field.field_type),
                )
                declared = True
        if declared:
            output.new_line()

        if self._options.convert_hooks:
            self._write_deserialize_into_method(output, plan)
        self._write_default_constructor(output, plan)
        self._write_deserialize_constructor(output, plan)
        if self._options.convert_hooks:
            self._write_class_convert_hooks(output, plan)
        self._write_serialize_method(output, plan)
        self._write_num_fields_set_method(output, plan)
        self._write_protobuf_size_method(output, plan)
        output.end_class()

        output.single_line_comment(f'MESSAGE END: {proto_path}')
        output.new_line()

    def _plan_message(self, node: ProtoMessage) -> _MessagePlan:
        """Classifies the fields of a message and names its members.

        Names are allocated in a fixed order so that the same message always
        produces the same names: oneof names, then member accessors, then
        plain fields.
        """
        proto_path = node.proto_path()
        descriptor = node.descriptor()
        generated_members = list(_GENERATED_MEMBERS)
        if self._options.convert_hooks:
            generated_members.append(_DESERIALIZE_INTO)
        scope = _ClassScope(proto_path, generated_members)

        oneofs: list[OneofGroup] = []
        for oneof in descriptor.oneof_decl:
            field_name = scope.allocate(f'{oneof.name}_')
            case_getter = scope.allocate(f'{oneof.name}_oneof_case')
            oneofs.append(
                OneofGroup(
                    proto_path=f'{proto_path}.{oneof.name}',
                    field_name=field_name,
                    case_name=scope.claim(f'{case_getter}_'),
                    case_getter=case_getter,
                    clear_function=scope.allocate(f'{oneof.name}_oneof_clear'),
                    setter_parameter=paths.unique_name(
                        oneof.name, paths.RESERVED_FIELD_NAMES
                    ),
                )
            )

        for proto_field in descriptor.field:
            if not proto_field.HasField('oneof_index'):
                continue
            oneof_group = oneofs[proto_field.oneof_index]
            accessor = scope.allocate(
                f'{oneof_group.field_name}{proto_field.name}'
            )
            scope.claim(accessor.upper())
            scope.claim(f'{accessor}=')
            oneof_group.case_fields[proto_field.number] = accessor

        fields: list[_MessageField] = []
        for proto_field in descriptor.field:
            try:
                field_type = classify(proto_field, self._registry)
            except CodegenError as err:
                if err.type_name is None:
                    err.type_name = proto_path
                err.field = f'{proto_path}.{proto_field.name}'
                raise

            if proto_field.HasField('oneof_index'):
                oneof_group = oneofs[proto_field.oneof_index]
                name = oneof_group.case_fields[proto_field.number]
                fields.append(_MessageField(field_type, name, oneof_group))
            else:
                name = scope.allocate(proto_field.name)
                fields.append(_MessageField(field_type, name))

        return _MessagePlan(node, node.toit_name(), scope, fields, oneofs)

    def _write_oneof(
        self, output: ToitWriter, plan: _MessagePlan, oneof: OneofGroup
    ) -> None:
        output.single_line_comment(f'ONEOF START: {oneof.proto_path}')
        output.variable(oneof.field_name, '', 'null')
        output.variable(oneof.case_name, 'int?', 'null')
        output.new_line()

        output.start_function_decl(oneof.clear_function)
        output.end_function_decl('none')
        self._write_assignment(output, oneof.field_name, 'null')
        self._write_assignment(output, oneof.case_name, 'null')
        output.end_function()
        output.new_line()

        members = [f for f in plan.fields if f.oneof is oneof]
        for member in members:
            output.static_const(
                oneof.case_constant(member.number()),
                'int',
                str(member.number()),
            )
        if members:
            output.new_line()

        output.start_function_decl(oneof.case_getter)
        output.end_function_decl('int?')
        self._write_return(output, oneof.case_name)
        output.end_function()
        output.new_line()

        for member in members:
            member_type = self._type_annotation(member.field_type)

            output.start_function_decl(member.name)
            output.end_function_decl(member_type)
            self._write_return(output, oneof.field_name)
            output.end_function()
            output.new_line()

            output.start_function_decl(f'{member.name}=')
            output.parameter(oneof.setter_parameter, member_type)
            output.end_function_decl('none')
            self._write_assignment(
                output, oneof.field_name, oneof.setter_parameter
            )
            self._write_assignment(
                output, oneof.case_name, oneof.case_constant(member.number())
            )
            output.end_function()
            output.new_line()

        output.single_line_comment(f'ONEOF END: {oneof.proto_path}')
        output.new_line()

    # Construction and deserialization.

    def _write_default_constructor(
        self, output: ToitWriter, plan: _MessagePlan
    ) -> None:
        output.start_constructor_decl()
        if self._options.constructor_initializers:
            for message_field in plan.fields:
                output.end_line()
                output.parameter_with_default(
                    f'--{message_field.name}',
                    self._type_annotation(
                        message_field.field_type, optional=True
                    ),
                    'null',
                )
        output.end_constructor_decl()

        if self._options.constructor_initializers:
            for message_field in plan.fields:
                output.start_call('if')
                output.argument(f'{message_field.name} != null')
                output.start_block()
                self._write_assignment(
                    output, f'this.{message_field.name}', message_field.name
                )
                output.end_block()
                output.end_call()

        output.end_constructor()
        output.new_line()

    def _write_deserialize_constructor(
        self, output: ToitWriter, plan: _MessagePlan
    ) -> None:
        output.start_constructor_decl('deserialize')
        output.parameter('r', READER_TYPE)
        output.end_constructor_decl()
        if self._options.convert_hooks:
            output.start_call(_DESERIALIZE_INTO)
            output.argument('r')
            output.argument('this')
            output.end_call()
        else:
            self._write_deserialize_body(output, plan)
        output.end_constructor()
        output.new_line()

    def _write_deserialize_into_method(
        self, output: ToitWriter, plan: _MessagePlan
    ) -> None:
        """Writes the static reader which fills an existing instance.

        Subclasses use it to deserialize into instances of their own type.
        """
        output.start_static_function_decl(_DESERIALIZE_INTO)
        output.parameter('r', READER_TYPE)
        output.parameter('obj', plan.class_name)
        output.end_function_decl(plan.class_name)
        self._write_deserialize_body(output, plan)
        self._write_return(output, 'obj')
        output.end_function()
        output.new_line()

    def _write_deserialize_body(
        self, output: ToitWriter, plan: _MessagePlan
    ) -> None:
        output.start_call('r.read_message')
        output.start_block()
        if not plan.fields:
            output.literal('1')
        for message_field in plan.fields:
            output.start_call('r.read_field')
            output.argument(str(message_field.number()))
            output.start_block()
            self._write_read_field_assignment(output, message_field)
            output.end_block()
            output.end_call()
        output.end_block()
        output.end_call()

    def _write_read_field_assignment(
        self, output: ToitWriter, message_field: _MessageField
    ) -> None:
        field_type = message_field.field_type
        if self._options.convert_hooks and not isinstance(
            field_type, ObjectField
        ):
            output.start_call(
                f'{self._target_prefix()}_deserialize_{message_field.name}'
            )
            output.end_line()
            self._write_read_value(output, field_type, message_field.name)
            output.end_call()
            return

        output.start_assignment(self._target_prefix() + message_field.name)
        self._write_read_value(output, field_type, message_field.name)
        output.end_assignment()

    def _write_read_value(
        self, output: ToitWriter, field_type: FieldType, name: str
    ) -> None:
        """Writes the expression reading one value of a field.

        name is the field name for fields and the hook suffix, like
        `entries_value`, for the elements of collections.
        """
        match field_type:
            case ListField(element=element):
                output.start_call('r.read_array')
                output.argument(self._wire_type(element))
                output.argument(self._target_prefix() + name)
                output.start_block()
                self._write_read_element(output, element, f'{name}_value')
                output.end_block()
                output.end_call()
            case MapField(key=key, value=value):
                output.start_call('r.read_map')
                output.argument(self._target_prefix() + name)
                output.start_block(inline=True)
                self._write_read_element(output, key, f'{name}_key')
                output.end_block(inline=True)
                output.start_block(inline=True)
                self._write_read_element(output, value, f'{name}_value')
                output.end_block(inline=True)
                output.end_call()
            case ObjectField(type_node=type_node):
                known = well_known_type(field_type, self._options.core_objects)
                if known is not None:
                    output.start_call(
                        f'{PROTOBUF_ALIAS}.deserialize_'
                        f'{_WELL_KNOWN_HELPERS[known]}'
                    )
                    output.argument('r')
                elif self._options.convert_hooks:
                    class_name = self._class_reference(type_node)
                    output.start_call(f'{class_name}.{_DESERIALIZE_INTO}')
                    output.argument('r')
                    output.argument(
                        f'{self._target_prefix()}_initialize_{name}'
                    )
                else:
                    output.start_call(
                        f'{self._class_reference(type_node)}.deserialize'
                    )
                    output.argument('r')
                output.end_call()
            case PrimitiveField():
                output.start_call('r.read_primitive')
                output.argument(self._wire_type(field_type))
                output.end_call()

    def _write_read_element(
        self, output: ToitWriter, field_type: FieldType, hook_name: str
    ) -> None:
        if self._options.convert_hooks and not isinstance(
            field_type, ObjectField
        ):
            output.start_call(
                f'{self._target_prefix()}_deserialize_{hook_name}'
            )
            output.start_parens()
            self._write_read_value(output, field_type, hook_name)
            output.end_parens()
            output.end_call()
            return

        self._write_read_value(output, field_type, hook_name)

    def _target_prefix(self) -> str:
        # With convert hooks, fields are read by the static deserialize_into.
        return 'obj.' if self._options.convert_hooks else ''

    # Convert hooks.

    def _write_class_convert_hooks(
        self, output: ToitWriter, plan: _MessagePlan
    ) -> None:
        for message_field in plan.fields:
            self._write_field_convert_hooks(
                output,
                plan,
                message_field.field_type,
                message_field.name,
                message_field.name,
                in_collection=False,
            )

    def _write_field_convert_hooks(
        self,
        output: ToitWriter,
        plan: _MessagePlan,
        field_type: FieldType,
        field_name: str,
        suffix: str,
        in_collection: bool,
    ) -> None:
        match field_type:
            case ListField(element=element):
                self._write_deserialize_field_method(
                    output, plan, field_type, field_name, suffix, False
                )
                self._write_serialize_field_method(
                    output, plan, field_type, field_name, suffix, False
                )
                self._write_field_convert_hooks(
                    output, plan, element, field_name, f'{suffix}_value', True
                )
            case MapField(key=key, value=value):
                self._write_deserialize_field_method(
                    output, plan, field_type, field_name, suffix, False
                )
                self._write_serialize_field_method(
                    output, plan, field_type, field_name, suffix, False
                )
                self._write_field_convert_hooks(
                    output, plan, key, field_name, f'{suffix}_key', True
                )
                self._write_field_convert_hooks(
                    output, plan, value, field_name, f'{suffix}_value', True
                )
            case ObjectField():
                self._write_initialize_object_method(
                    output, plan, field_type, suffix
                )
                self._write_serialize_field_method(
                    output, plan, field_type, field_name, suffix, in_collection
                )
            case PrimitiveField():
                self._write_deserialize_field_method(
                    output, plan, field_type, field_name, suffix, in_collection
                )
                self._write_serialize_field_method(
                    output, plan, field_type, field_name, suffix, in_collection
                )

    def _write_initialize_object_method(
        self,
        output: ToitWriter,
        plan: _MessagePlan,
        field_type: FieldType,
        suffix: str,
    ) -> None:
        output.start_function_decl(plan.scope.claim(f'_initialize_{suffix}'))
        output.end_function_decl(self._type_annotation(field_type))
        self._write_return(output, self._default_value(field_type))
        output.end_function()
        output.new_line()

    def _write_deserialize_field_method(
        self,
        output: ToitWriter,
        plan: _MessagePlan,
        field_type: FieldType,
        field_name: str,
        suffix: str,
        in_collection: bool,
    ) -> None:
        output.start_function_decl(plan.scope.claim(f'_deserialize_{suffix}'))
        output.parameter('in', self._type_annotation(field_type))
        if in_collection:
            output.end_function_decl('any')
            self._write_return(output, 'in')
        else:
            output.end_function_decl()
            self._write_assignment(output, field_name, 'in')
        output.end_function()
        output.new_line()

    def _write_serialize_field_method(
        self,
        output: ToitWriter,
        plan: _MessagePlan,
        field_type: FieldType,
        field_name: str,
        suffix: str,
        in_collection: bool,
    ) -> None:
        output.start_function_decl(plan.scope.claim(f'_serialize_{suffix}'))
        if in_collection:
            output.parameter('in', 'any')
        output.end_function_decl(self._type_annotation(field_type))
        self._write_return(output, 'in' if in_collection else field_name)
        output.end_function()
        output.new_line()

    # Serialization.

    def _write_serialize_method(
        self, output: ToitWriter, plan: _MessagePlan
    ) -> None:
        output.start_function_decl('serialize')
        output.parameter('w', WRITER_TYPE)
        output.parameter_with_default('--as_field', 'int?', 'null')
        output.parameter_with_default('--oneof', 'bool', 'false')
        output.end_function_decl('none')

        output.start_call('w.write_message_header')
        output.argument('this')
        output.named_argument('--as_field', 'as_field')
        output.named_argument('--oneof', 'oneof')
        output.end_call()

        for message_field in plan.fields:
            if message_field.oneof is None:
                self._write_serialize_field(
                    output,
                    message_field.field_type,
                    message_field.name,
                    as_field=str(message_field.number()),
                )
            else:
                self._write_serialize_oneof_field(output, message_field)

        output.end_function()
        output.new_line()

    def _write_serialize_oneof_field(
        self, output: ToitWriter, message_field: _MessageField
    ) -> None:
        oneof = message_field.oneof
        assert oneof is not None
        constant = oneof.case_constant(message_field.number())

        output.start_call('if')
        output.argument(f'{oneof.case_name} == {constant}')
        output.start_block()
        self._write_serialize_field(
            output,
            message_field.field_type,
            oneof.field_name,
            as_field=constant,
            oneof_accessor=message_field.name,
        )
        output.end_block()
        output.end_call()

    def _write_serialize_field(
        self,
        output: ToitWriter,
        field_type: FieldType,
        name: str,
        as_field: str | None = None,
        oneof_accessor: str | None = None,
        collection: str | None = None,
    ) -> None:
        """Writes the statement serializing one value.

        Args:
          name: the variable holding the value.
          as_field: the field number argument, omitted for collection elements.
          oneof_accessor: the member accessor, for oneof members.
          collection: the field name, for elements of a list or map.
        """
        value = self._serialize_name(name, oneof_accessor, collection)
        oneof = oneof_accessor is not None

        match field_type:
            case ListField(element=element):
                output.start_call('w.write_array')
                output.argument(self._wire_type(element))
                output.argument(value)
                self._write_serialize_named_arguments(output, as_field, oneof)
                output.start_block(
                    parameters=[f'value/{self._type_annotation(element)}']
                )
                self._write_serialize_field(
                    output, element, 'value', collection=name
                )
                output.end_block()
                output.end_call()
            case MapField(key=key, value=map_value):
                output.start_call('w.write_map')
                output.argument(self._wire_type(key))
                output.argument(self._wire_type(map_value))
                output.argument(value)
                self._write_serialize_named_arguments(output, as_field, oneof)
                output.start_block(
                    inline=True,
                    parameters=[f'key/{self._type_annotation(key)}'],
                )
                self._write_serialize_field(
                    output, key, 'key', collection=name
                )
                output.end_block(inline=True)
                output.start_block(
                    inline=True,
                    parameters=[f'value/{self._type_annotation(map_value)}'],
                )
                self._write_serialize_field(
                    output, map_value, 'value', collection=name
                )
                output.end_block(inline=True)
                output.end_call()
            case ObjectField():
                known = well_known_type(field_type, self._options.core_objects)
                if known is not None:
                    helper = _WELL_KNOWN_HELPERS[known]
                    output.start_call(f'{PROTOBUF_ALIAS}.serialize_{helper}')
                    output.argument(value)
                    output.argument('w')
                else:
                    output.start_call(f'{value}.serialize')
                    output.argument('w')
                self._write_serialize_named_arguments(output, as_field, oneof)
                output.end_call()
            case PrimitiveField():
                output.start_call('w.write_primitive')
                output.argument(self._wire_type(field_type))
                output.argument(value)
                self._write_serialize_named_arguments(output, as_field, oneof)
                output.end_call()

    def _serialize_name(
        self,
        name: str,
        oneof_accessor: str | None = None,
        collection: str | None = None,
    ) -> str:
        """The expression a value is serialized from.

        With convert hooks, values pass through their _serialize_ hook.
        """
        if not self._options.convert_hooks:
            return name
        if oneof_accessor is not None:
            name = oneof_accessor
        if collection is not None:
            return f'(_serialize_{collection}_{name} {name})'
        return f'_serialize_{name}'

    @staticmethod
    def _write_serialize_named_arguments(
        output: ToitWriter, as_field: str | None, oneof: bool
    ) -> None:
        if as_field is not None:
            output.named_argument('--as_field', as_field)
        if oneof:
            output.named_argument('--oneof')

    # Presence and size.

    def _write_num_fields_set_method(
        self, output: ToitWriter, plan: _MessagePlan
    ) -> None:
        conditions = [f'{oneof.case_name} == null' for oneof in plan.oneofs]
        conditions.extend(
            self._presence_condition(message_field)
            for message_field in plan.fields
            if message_field.oneof is None
        )

        output.start_function_decl('num_fields_set')
        output.end_function_decl('int')
        output.return_start()
        if not conditions:
            output.argument('0')
        for i, condition in enumerate(conditions):
            if i != 0:
                output.end_line()
                output.literal('+')
            output.condition_expression(condition, '0', '1')
        output.return_end()
        output.end_function()
        output.new_line()

    def _presence_condition(self, message_field: _MessageField) -> str:
        """The condition under which a field is not written to the wire."""
        field_type = message_field.field_type
        name = self._size_name(message_field)

        match field_type:
            case ListField() | MapField():
                return f'{name}.is_empty'
            case ObjectField():
                match well_known_type(field_type, self._options.core_objects):
                    case WellKnownType.DURATION:
                        return f'{name}.is_zero'
                    case WellKnownType.TIMESTAMP:
                        return f'({PROTOBUF_ALIAS}.time_is_zero_epoch {name})'
                return f'{name}.is_empty'
            case PrimitiveField(field=proto_field):
                if proto_field.type in (
                    FieldDescriptorProto.TYPE_STRING,
                    FieldDescriptorProto.TYPE_BYTES,
                ):
                    return f'{name}.is_empty'
                return f'{name} == {self._default_value(field_type)}'
        raise UnsupportedKindError(
            'unknown field kind', field=message_field.name
        )

    def _write_protobuf_size_method(
        self, output: ToitWriter, plan: _MessagePlan
    ) -> None:
        output.start_function_decl('protobuf_size')
        output.end_function_decl('int')
        output.return_start()
        if not plan.fields:
            output.argument('0')
        for i, message_field in enumerate(plan.fields):
            if i != 0:
                output.end_line()
                output.literal('+')

            oneof = message_field.oneof
            if oneof is None:
                self._write_size_field(output, message_field)
                continue

            output.start_parens()
            output.argument(
                f'{oneof.case_name} == '
                f'{oneof.case_constant(message_field.number())}'
            )
            output.argument('?')
            self._write_size_field(output, message_field)
            output.argument(':')
            output.argument('0')
            output.end_parens()
        output.return_end()
        output.end_function()
        output.new_line()

    def _write_size_field(
        self, output: ToitWriter, message_field: _MessageField
    ) -> None:
        field_type = message_field.field_type
        name = self._size_name(message_field)

        output.start_parens()
        match field_type:
            case ListField(element=element):
                output.start_call(f'{PROTOBUF_ALIAS}.size_array')
                output.argument(self._wire_type(element))
                output.argument(name)
            case MapField(key=key, value=value):
                output.start_call(f'{PROTOBUF_ALIAS}.size_map')
                output.argument(self._wire_type(key))
                output.argument(self._wire_type(value))
                output.argument(name)
            case ObjectField():
                known = well_known_type(field_type, self._options.core_objects)
                if known is not None:
                    output.start_call(
                        f'{PROTOBUF_ALIAS}.size_{_WELL_KNOWN_HELPERS[known]}'
                    )
                    output.argument(name)
                else:
                    output.start_call(f'{PROTOBUF_ALIAS}.size_embedded_message')
                    output.argument(f'({name}.protobuf_size)')
            case PrimitiveField():
                output.start_call(f'{PROTOBUF_ALIAS}.size_primitive')
                output.argument(self._wire_type(field_type))
                output.argument(name)
        output.named_argument('--as_field', str(message_field.number()))
        if message_field.oneof is not None:
            # Oneof members are written even when they hold a default value.
            output.named_argument('--oneof')
        output.end_call(new_line=False)
        output.end_parens()

    def _size_name(self, message_field: _MessageField) -> str:
        if self._options.convert_hooks:
            return f'_serialize_{message_field.name}'
        return message_field.name

    # Types and values.

    def _type_annotation(
        self,
        field_type: FieldType,
        optional: bool = False,
        in_comment: bool = False,
    ) -> str:
        """The Toit type of a field.

        Element types of collections and the enum behind an int are given in
        comments, e.g. `List/*<int>*/` or `int/*enum<Color>*/`.
        """
        suffix = '?' if optional else ''
        match field_type:
            case ListField(element=element):
                element_type = self._type_annotation(element, in_comment=True)
                if in_comment:
                    return f'List<{element_type}>{suffix}'
                return f'List{suffix}/*<{element_type}>*/'
            case MapField(key=key, value=value):
                key_type = self._type_annotation(key, in_comment=True)
                value_type = self._type_annotation(value, in_comment=True)
                if in_comment:
                    return f'Map<{key_type},{value_type}>{suffix}'
                return f'Map{suffix}/*<{key_type},{value_type}>*/'
            case ObjectField(type_node=type_node):
                known = well_known_type(field_type, self._options.core_objects)
                if known is not None:
                    return _WELL_KNOWN_TOIT_TYPES[known] + suffix
                return self._class_reference(type_node) + suffix
            case PrimitiveField(field=proto_field, type_node=type_node):
                if proto_field.type == FieldDescriptorProto.TYPE_ENUM:
                    assert type_node is not None
                    enum_type = (
                        f'enum<{self._class_reference(type_node)}>{suffix}'
                    )
                    if in_comment:
                        return enum_type
                    return f'int{suffix}/*{enum_type}*/'
                return self._scalar_type(proto_field) + suffix
        raise UnsupportedKindError('unknown field kind')

    @staticmethod
    def _scalar_type(proto_field: FieldDescriptorProto) -> str:
        if proto_field.type in _INT_TYPES:
            return 'int'
        if proto_field.type in _FLOAT_TYPES:
            return 'float'
        if proto_field.type == FieldDescriptorProto.TYPE_BOOL:
            return 'bool'
        if proto_field.type == FieldDescriptorProto.TYPE_STRING:
            return 'string'
        if proto_field.type == FieldDescriptorProto.TYPE_BYTES:
            return 'ByteArray'
        raise UnsupportedKindError(
            f'no Toit type for protobuf type {proto_field.type}',
            field=proto_field.name,
        )

    def _default_value(self, field_type: FieldType) -> str:
        """The value a field holds when it is not set."""
        match field_type:
            case ListField():
                return '[]'
            case MapField():
                return '{:}'
            case ObjectField(type_node=type_node):
                known = well_known_type(field_type, self._options.core_objects)
                if known is not None:
                    return _WELL_KNOWN_DEFAULTS[known]
                # A class name alone invokes its default constructor.
                return self._class_reference(type_node)
            case PrimitiveField(field=proto_field):
                if proto_field.type == FieldDescriptorProto.TYPE_ENUM:
                    return '0'
                if proto_field.type in _INT_TYPES:
                    return '0'
                if proto_field.type in _FLOAT_TYPES:
                    return '0.0'
                if proto_field.type == FieldDescriptorProto.TYPE_BOOL:
                    return 'false'
                if proto_field.type == FieldDescriptorProto.TYPE_STRING:
                    return '""'
                if proto_field.type == FieldDescriptorProto.TYPE_BYTES:
                    return 'ByteArray 0'
                raise UnsupportedKindError(
                    f'no default value for protobuf type {proto_field.type}',
                    field=proto_field.name,
                )
        raise UnsupportedKindError('unknown field kind')

    def _class_reference(self, node: ProtoNode) -> str:
        """The class name of node, qualified by its file's import alias.

        Raises:
          UnresolvedTypeError: node's file is not imported by the current file.
        """
        file_name = node.file().name
        if file_name not in self._imports:
            raise UnresolvedTypeError(
                f'{file_name} is not imported by the generated file',
                node.proto_path(),
            )
        return node.toit_name(self._imports[file_name])

    @staticmethod
    def _wire_type(field_type: FieldType) -> str:
        return f'{PROTOBUF_ALIAS}.{wire_type_constant(field_type.field)}'

    @staticmethod
    def _write_assignment(output: ToitWriter, target: str, value: str) -> None:
        output.start_assignment(target)
        output.argument(value)
        output.end_assignment()

    @staticmethod
    def _write_return(output: ToitWriter, value: str) -> None:
        output.return_start()
        output.argument(value)
        output.return_end()
