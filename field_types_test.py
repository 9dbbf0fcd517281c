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
"""Tests for the classification of message fields."""

import unittest

from google.protobuf import descriptor_pb2, text_format

from protoc_gen_toit.errors import UnresolvedTypeError, UnsupportedKindError
from protoc_gen_toit.field_types import (
    ListField,
    MapField,
    ObjectField,
    PrimitiveField,
    WellKnownType,
    classify,
    well_known_type,
    wire_type_constant,
)
from protoc_gen_toit.proto_tree import ProtoNode, TypeRegistry

DURATION_FILE = """\
name: "google/protobuf/duration.proto"
package: "google.protobuf"
message_type {
  name: "Duration"
  field { name: "seconds" number: 1 label: LABEL_OPTIONAL type: TYPE_INT64 }
  field { name: "nanos" number: 2 label: LABEL_OPTIONAL type: TYPE_INT32 }
}
"""

SAMPLE_FILE = """\
name: "sample.proto"
package: "pkg"
dependency: "google/protobuf/duration.proto"
enum_type {
  name: "Color"
  value { name: "RED" number: 0 }
}
message_type {
  name: "Child"
}
message_type {
  name: "Sample"
  field { name: "id" number: 1 label: LABEL_OPTIONAL type: TYPE_INT32 }
  field { name: "tags" number: 2 label: LABEL_REPEATED type: TYPE_STRING }
  field {
    name: "attrs"
    number: 3
    label: LABEL_REPEATED
    type: TYPE_MESSAGE
    type_name: ".pkg.Sample.AttrsEntry"
  }
  field {
    name: "children"
    number: 4
    label: LABEL_REPEATED
    type: TYPE_MESSAGE
    type_name: ".pkg.Child"
  }
  field {
    name: "child"
    number: 5
    label: LABEL_OPTIONAL
    type: TYPE_MESSAGE
    type_name: ".pkg.Child"
  }
  field {
    name: "color"
    number: 6
    label: LABEL_OPTIONAL
    type: TYPE_ENUM
    type_name: ".pkg.Color"
  }
  field {
    name: "timeout"
    number: 7
    label: LABEL_OPTIONAL
    type: TYPE_MESSAGE
    type_name: ".google.protobuf.Duration"
  }
  field {
    name: "missing"
    number: 8
    label: LABEL_OPTIONAL
    type: TYPE_MESSAGE
    type_name: ".pkg.Missing"
  }
  field {
    name: "legacy"
    number: 9
    label: LABEL_OPTIONAL
    type: TYPE_GROUP
    type_name: ".pkg.Child"
  }
  field {
    name: "broken_map"
    number: 10
    label: LABEL_REPEATED
    type: TYPE_MESSAGE
    type_name: ".pkg.Sample.BrokenEntry"
  }
  nested_type {
    name: "AttrsEntry"
    field { name: "key" number: 1 label: LABEL_OPTIONAL type: TYPE_STRING }
    field { name: "value" number: 2 label: LABEL_OPTIONAL type: TYPE_INT64 }
    options { map_entry: true }
  }
  nested_type {
    name: "BrokenEntry"
    field { name: "key" number: 1 label: LABEL_OPTIONAL type: TYPE_STRING }
    options { map_entry: true }
  }
}
"""


class TestClassify(unittest.TestCase):
    """Tests for classify."""

    def setUp(self) -> None:
        files = [
            text_format.Parse(text, descriptor_pb2.FileDescriptorProto())
            for text in (DURATION_FILE, SAMPLE_FILE)
        ]
        self._registry = TypeRegistry.build(files)
        message = self._registry.lookup('.pkg.Sample').descriptor()
        self._fields = {field.name: field for field in message.field}

    def _classify(self, name: str):
        return classify(self._fields[name], self._registry)

    def test_scalar(self) -> None:
        field_type = self._classify('id')
        self.assertIsInstance(field_type, PrimitiveField)
        self.assertIsNone(field_type.type_node)

    def test_enum_is_primitive(self) -> None:
        field_type = self._classify('color')
        self.assertIsInstance(field_type, PrimitiveField)
        self.assertEqual(field_type.type_node.type(), ProtoNode.Type.ENUM)

    def test_message(self) -> None:
        field_type = self._classify('child')
        self.assertIsInstance(field_type, ObjectField)
        self.assertEqual(field_type.type_node.proto_path(), '.pkg.Child')

    def test_repeated_scalar_is_list(self) -> None:
        field_type = self._classify('tags')
        self.assertIsInstance(field_type, ListField)
        self.assertIsInstance(field_type.element, PrimitiveField)
        self.assertIs(field_type.element.field, field_type.field)

    def test_repeated_message_is_list_of_objects(self) -> None:
        field_type = self._classify('children')
        self.assertIsInstance(field_type, ListField)
        self.assertIsInstance(field_type.element, ObjectField)

    def test_map_entry_is_map(self) -> None:
        field_type = self._classify('attrs')
        self.assertIsInstance(field_type, MapField)
        self.assertIsInstance(field_type.key, PrimitiveField)
        self.assertIsInstance(field_type.value, PrimitiveField)
        self.assertEqual(field_type.key.field.name, 'key')
        self.assertEqual(field_type.value.field.name, 'value')

    def test_suppress_repeat_on_map_field(self) -> None:
        field_type = classify(
            self._fields['attrs'], self._registry, suppress_repeat=True
        )
        self.assertIsInstance(field_type, ObjectField)

    def test_idempotent(self) -> None:
        for name in ('id', 'tags', 'attrs', 'children', 'child', 'color'):
            with self.subTest(field=name):
                self.assertEqual(self._classify(name), self._classify(name))

    def test_unresolved_type(self) -> None:
        with self.assertRaises(UnresolvedTypeError) as context:
            self._classify('missing')
        self.assertEqual(context.exception.field, 'missing')
        self.assertEqual(context.exception.type_name, '.pkg.Missing')

    def test_group_unsupported(self) -> None:
        with self.assertRaises(UnsupportedKindError) as context:
            self._classify('legacy')
        self.assertEqual(context.exception.field, 'legacy')

    def test_map_entry_without_value(self) -> None:
        with self.assertRaises(UnsupportedKindError) as context:
            self._classify('broken_map')
        self.assertEqual(context.exception.type_name, '.pkg.Sample.BrokenEntry')

    def test_wire_type_constant(self) -> None:
        self.assertEqual(
            wire_type_constant(self._fields['id']), 'PROTOBUF_TYPE_INT32'
        )
        self.assertEqual(
            wire_type_constant(self._fields['color']), 'PROTOBUF_TYPE_ENUM'
        )
        with self.assertRaises(UnsupportedKindError):
            wire_type_constant(self._fields['legacy'])

    def test_well_known_type(self) -> None:
        timeout = self._classify('timeout')
        self.assertIsInstance(timeout, ObjectField)
        self.assertIs(
            well_known_type(timeout, core_objects=True), WellKnownType.DURATION
        )
        self.assertIsNone(well_known_type(timeout, core_objects=False))
        self.assertIsNone(
            well_known_type(self._classify('child'), core_objects=True)
        )
        self.assertIsNone(
            well_known_type(self._classify('id'), core_objects=True)
        )


if __name__ == '__main__':
    unittest.main()
