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
"""Tests for the protoc plugin entrypoint."""

import io
import unittest
from unittest import mock

from google.protobuf import text_format
from google.protobuf.compiler import plugin_pb2

from protoc_gen_toit import log, plugin

REQUEST = """\
file_to_generate: "sample.proto"
proto_file {
  name: "dep.proto"
  message_type { name: "Dep" }
}
proto_file {
  name: "sample.proto"
  dependency: "dep.proto"
  message_type {
    name: "Sample"
    field { name: "id" number: 1 label: LABEL_OPTIONAL type: TYPE_INT32 }
    field {
      name: "dep"
      number: 2
      label: LABEL_OPTIONAL
      type: TYPE_MESSAGE
      type_name: ".Dep"
    }
  }
}
"""


def _request(parameter: str = '') -> plugin_pb2.CodeGeneratorRequest:
    request = text_format.Parse(REQUEST, plugin_pb2.CodeGeneratorRequest())
    request.parameter = parameter
    return request


class TestProcessProtoRequest(unittest.TestCase):
    """Tests for process_proto_request."""

    def test_generates_requested_files(self) -> None:
        response = plugin_pb2.CodeGeneratorResponse()
        self.assertTrue(plugin.process_proto_request(_request(), response))

        self.assertFalse(response.HasField('error'))
        self.assertEqual([f.name for f in response.file], ['sample_pb.toit'])
        content = response.file[0].content
        self.assertIn('import .dep_pb as _dep\n', content)
        self.assertIn('  dep/_dep.Dep := _dep.Dep\n', content)

    def test_options_are_applied(self) -> None:
        response = plugin_pb2.CodeGeneratorResponse()
        self.assertTrue(
            plugin.process_proto_request(
                _request('convert_hooks=true'), response
            )
        )
        self.assertIn('static deserialize_into', response.file[0].content)

    def test_failure_sets_error(self) -> None:
        response = plugin_pb2.CodeGeneratorResponse()
        with self.assertLogs('protoc_gen_toit.plugin', 'ERROR'):
            success = plugin.process_proto_request(
                _request('core_objects=maybe'), response
            )

        self.assertFalse(success)
        self.assertIn('core_objects', response.error)
        self.assertTrue(response.error.startswith('toit codegen error: '))
        self.assertEqual(len(response.file), 0)

    def test_failure_adds_no_files(self) -> None:
        request = _request()
        request.file_to_generate.append('dep.proto')
        request.proto_file[1].message_type[0].field[1].type_name = '.Gone'

        response = plugin_pb2.CodeGeneratorResponse()
        with self.assertLogs('protoc_gen_toit.plugin', 'ERROR'):
            self.assertFalse(plugin.process_proto_request(request, response))

        self.assertIn('.Gone', response.error)
        self.assertEqual(len(response.file), 0)


class TestMain(unittest.TestCase):
    """Tests for the plugin's stdin/stdout handling."""

    def _run(self, request: plugin_pb2.CodeGeneratorRequest):
        stdin = io.TextIOWrapper(io.BytesIO(request.SerializeToString()))
        stdout = io.TextIOWrapper(io.BytesIO())
        stderr = io.StringIO()

        with mock.patch.object(log, 'install'), mock.patch.multiple(
            'sys', stdin=stdin, stdout=stdout, stderr=stderr
        ):
            status = plugin.main()

        response = plugin_pb2.CodeGeneratorResponse.FromString(
            stdout.buffer.getvalue()
        )
        return status, response, stderr.getvalue()

    def test_success(self) -> None:
        status, response, stderr = self._run(_request())

        self.assertEqual(status, 0)
        self.assertEqual(stderr, '')
        self.assertEqual(len(response.file), 1)
        self.assertTrue(
            response.supported_features
            & plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL
        )

    def test_failure(self) -> None:
        with self.assertLogs('protoc_gen_toit.plugin', 'ERROR'):
            status, response, stderr = self._run(_request('convert_hooks=x'))

        self.assertEqual(status, 1)
        self.assertIn('convert_hooks', response.error)
        self.assertIn('failed to generate Toit code', stderr)

    def test_malformed_log_level(self) -> None:
        with mock.patch.dict('os.environ', {log.LOG_LEVEL_ENV: 'loud'}):
            status, _, stderr = self._run(_request())

        self.assertEqual(status, 1)
        self.assertIn('LOUD', stderr)


if __name__ == '__main__':
    unittest.main()
