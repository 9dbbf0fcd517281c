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
"""protoc-gen-toit compiler plugin.

This file implements a protobuf compiler plugin which generates Toit classes
for protobuf messages. Run protoc with `--toit_out=DIR` and, optionally,
`--toit_opt=key=value;...` to pass generator options.
"""

import logging
import sys

from google.protobuf.compiler import plugin_pb2

from protoc_gen_toit import codegen_toit, log, options
from protoc_gen_toit.errors import CodegenError, MalformedParameterError

_LOG = logging.getLogger(__name__)


def process_proto_request(
    req: plugin_pb2.CodeGeneratorRequest, res: plugin_pb2.CodeGeneratorResponse
) -> bool:
    """Handles a protoc CodeGeneratorRequest message.

    Generates code for the files in the request and writes the output to the
    specified CodeGeneratorResponse message. Either all requested files are
    added to the response or, on failure, none are and the response's error is
    set.

    Args:
      req: A CodeGeneratorRequest for a proto compilation.
      res: A CodeGeneratorResponse to populate with the plugin's output.
    """
    try:
        codegen_options = options.parse_generator_options(req.parameter)
        generator = codegen_toit.Generator(req.proto_file, codegen_options)
        output_files = generator.generate(req.file_to_generate)
    except CodegenError as err:
        _LOG.error('%s', err.formatted_message())
        res.error = err.formatted_message()
        return False

    for output_file in output_files:
        fd = res.file.add()
        fd.name = output_file.name()
        fd.content = output_file.content()

    return True


def main() -> int:
    """Protobuf compiler plugin entrypoint.

    Reads a CodeGeneratorRequest proto from stdin and writes a
    CodeGeneratorResponse to stdout.
    """
    try:
        log.install(log.level_from_environment())
    except MalformedParameterError as err:
        print(err.formatted_message(), file=sys.stderr)
        return 1

    data = sys.stdin.buffer.read()
    request = plugin_pb2.CodeGeneratorRequest.FromString(data)
    response = plugin_pb2.CodeGeneratorResponse()

    # Declare that this plugin supports optional fields in proto3.
    response.supported_features |= (  # type: ignore[attr-defined]
        response.FEATURE_PROTO3_OPTIONAL
    )  # type: ignore[attr-defined]

    success = process_proto_request(request, response)
    sys.stdout.buffer.write(response.SerializeToString())

    if not success:
        print('protoc-gen-toit failed to generate Toit code', file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
