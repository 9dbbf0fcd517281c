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
"""Structured writer for Toit source files.

Example:

```
output = ToitWriter('hello.toit')
output.start_function_decl('main')
output.end_function_decl()
output.start_call('print')
output.argument('"Hello, world"')
output.end_call()
output.end_function()

print(output.content())
```

Produces:
```
main:
  print "Hello, world"
```

Every start_* or *_start operation opens a construct which must be closed by
the matching end operation before the construct around it is closed.
Indentation follows from the open constructs: a body is indented two spaces
past the line that opens it, and continuation lines of an unfinished
statement or declaration four more.
"""

import enum
from typing import Sequence


class WriterNestingError(Exception):
    """The writer was used with unbalanced or misplaced constructs."""


class _Scope(enum.Enum):
    CLASS = 'class'
    FUNCTION_DECL = 'function declaration'
    FUNCTION = 'function'
    CONSTRUCTOR_DECL = 'constructor declaration'
    CONSTRUCTOR = 'constructor'
    CALL = 'call'
    BLOCK = 'block'
    INLINE_BLOCK = 'inline block'
    PARENS = 'parentheses'
    ASSIGNMENT = 'assignment'
    RETURN = 'return'


# Constructs whose contents are indented statements.
_BODY_SCOPES = frozenset(
    (_Scope.CLASS, _Scope.FUNCTION, _Scope.CONSTRUCTOR, _Scope.BLOCK)
)
_DECLARATION_SCOPES = frozenset((_Scope.FUNCTION_DECL, _Scope.CONSTRUCTOR_DECL))
_EXPRESSION_SCOPES = frozenset(
    (
        _Scope.CALL,
        _Scope.INLINE_BLOCK,
        _Scope.PARENS,
        _Scope.ASSIGNMENT,
        _Scope.RETURN,
    )
)

# Constructs within which a closed call is only part of an expression.
_NESTED = frozenset((_Scope.CALL, _Scope.INLINE_BLOCK, _Scope.PARENS))


class ToitWriter:
    """A buffer of Toit source code, written construct by construct."""

    INDENT_WIDTH = 2
    CONTINUATION_WIDTH = 4

    def __init__(self, filename: str):
        self._filename: str = filename
        self._lines: list[str] = []
        self._line: list[str] = []
        self._line_started: bool = False
        self._needs_space: bool = False
        self._scopes: list[_Scope] = []
        self._body_indents: list[int] = []
        self._line_indent: int = 0
        self._statement_indent: int = 0

    def name(self) -> str:
        return self._filename

    def content(self) -> str:
        """Returns the written source.

        Raises:
          WriterNestingError: A construct is still open.
        """
        if self._scopes:
            open_scopes = ', '.join(scope.value for scope in self._scopes)
            raise WriterNestingError(f'unclosed constructs: {open_scopes}')

        self._flush()
        return ''.join(f'{line}\n' for line in self._lines)

    # File and class level statements.

    def single_line_comment(self, text: str) -> None:
        self._start_statement()
        self._write(f'// {text}' if text else '//')
        self._flush()

    def new_line(self) -> None:
        self._flush()
        self._lines.append('')

    def end_line(self) -> None:
        """Ends the current line; the statement continues on the next one."""
        self._flush()

    def import_as(self, module: str, alias: str) -> None:
        self._require_file_level('import')
        self._flush()
        self._write(f'import {module} as {alias}')
        self._flush()

    def const(self, name: str, type_name: str, value: str) -> None:
        self._require_statement_level('constant')
        self._flush()
        self._write(f'{self._typed(name, type_name)} ::= {value}')
        self._flush()

    def static_const(self, name: str, type_name: str, value: str) -> None:
        self._require(_Scope.CLASS, operation='static constant')
        self._flush()
        self._write(f'static {self._typed(name, type_name)} ::= {value}')
        self._flush()

    def variable(self, name: str, type_name: str, default: str) -> None:
        self._require_statement_level('variable')
        self._flush()
        self._write(f'{self._typed(name, type_name)} := {default}')
        self._flush()

    def start_class(self, name: str, extends: str = '') -> None:
        self._require_file_level('class')
        self._flush()
        header = f'class {name}'
        if extends:
            header += f' extends {extends}'
        self._write(header + ':')
        self._flush()
        self._open_body(_Scope.CLASS)

    def end_class(self) -> None:
        self._close_body(_Scope.CLASS)

    # Functions and constructors.

    def start_function_decl(self, name: str, static: bool = False) -> None:
        if self._scopes:
            self._require(_Scope.CLASS, operation='function')
        self._flush()
        self._write(f'static {name}' if static else name)
        self._scopes.append(_Scope.FUNCTION_DECL)

    def start_static_function_decl(self, name: str) -> None:
        self.start_function_decl(name, static=True)

    def end_function_decl(self, return_type: str = '') -> None:
        self._pop(_Scope.FUNCTION_DECL)
        if return_type:
            self._write(f'-> {return_type}')
        self._write(':', space=False)
        self._flush()
        self._open_body(_Scope.FUNCTION)

    def end_function(self) -> None:
        self._close_body(_Scope.FUNCTION)

    def start_constructor_decl(self, name: str = '') -> None:
        self._require(_Scope.CLASS, operation='constructor')
        self._flush()
        self._write(f'constructor.{name}' if name else 'constructor')
        self._scopes.append(_Scope.CONSTRUCTOR_DECL)

    def end_constructor_decl(self) -> None:
        self._pop(_Scope.CONSTRUCTOR_DECL)
        self._write(':', space=False)
        self._flush()
        self._open_body(_Scope.CONSTRUCTOR)

    def end_constructor(self) -> None:
        self._close_body(_Scope.CONSTRUCTOR)

    def parameter(self, name: str, type_name: str = '') -> None:
        self._require(*_DECLARATION_SCOPES, operation='parameter')
        self._write(self._typed(name, type_name))

    def parameter_with_default(
        self, name: str, type_name: str, default: str
    ) -> None:
        self._require(*_DECLARATION_SCOPES, operation='parameter')
        self._write(f'{self._typed(name, type_name)}={default}')

    # Statements and expressions.

    def start_call(self, function: str) -> None:
        self._start_statement()
        self._write(function)
        self._scopes.append(_Scope.CALL)

    def end_call(self, new_line: bool = True) -> None:
        """Ends a call, and the line with it if new_line is set.

        A call nested in another call, in parentheses or in an inline block
        never ends the line, since the surrounding expression continues.
        """
        self._pop(_Scope.CALL)
        if new_line and not (self._scopes and self._scopes[-1] in _NESTED):
            self._flush()

    def argument(self, value: str) -> None:
        self._require(*_EXPRESSION_SCOPES, operation='argument')
        if value:
            self._write(value)

    def named_argument(self, name: str, value: str = '') -> None:
        self._require(_Scope.CALL, operation='named argument')
        self._write(f'{name}={value}' if value else name)

    def literal(self, text: str) -> None:
        self._write(text, space=False)

    def condition_expression(
        self, condition: str, if_true: str, if_false: str
    ) -> None:
        self._require(*_EXPRESSION_SCOPES, operation='condition expression')
        self._write(f'({condition} ? {if_true} : {if_false})')

    def start_block(
        self, inline: bool = False, parameters: Sequence[str] = ()
    ) -> None:
        """Starts a block argument of the current call.

        Blocks are written as an indented body after a colon, or inline in
        parentheses, e.g. `(: | key | key.size)`.
        """
        self._require(_Scope.CALL, operation='block')
        if inline:
            self._write('(:')
        else:
            self._write(':', space=False)

        if parameters:
            self._write('|')
            for parameter in parameters:
                self._write(parameter)
            self._write('|')

        if inline:
            self._scopes.append(_Scope.INLINE_BLOCK)
        else:
            self._flush()
            self._open_body(_Scope.BLOCK)

    def end_block(self, inline: bool = False) -> None:
        if inline:
            self._pop(_Scope.INLINE_BLOCK)
            self._write(')', space=False)
        else:
            self._close_body(_Scope.BLOCK)

    def start_parens(self) -> None:
        self._require(*_EXPRESSION_SCOPES, operation='parentheses')
        self._write('(')
        self._needs_space = False
        self._scopes.append(_Scope.PARENS)

    def end_parens(self) -> None:
        self._pop(_Scope.PARENS)
        self._write(')', space=False)

    def start_assignment(self, target: str) -> None:
        self._start_statement()
        self._write(f'{target} =')
        self._scopes.append(_Scope.ASSIGNMENT)

    def end_assignment(self) -> None:
        self._pop(_Scope.ASSIGNMENT)
        self._flush()

    def return_start(self) -> None:
        self._require_statement_level('return')
        self._flush()
        self._write('return')
        self._scopes.append(_Scope.RETURN)

    def return_end(self) -> None:
        self._pop(_Scope.RETURN)
        self._flush()

    # Internals.

    @staticmethod
    def _typed(name: str, type_name: str) -> str:
        return f'{name}/{type_name}' if type_name else name

    def _at_statement_level(self) -> bool:
        return not self._scopes or self._scopes[-1] in _BODY_SCOPES

    def _start_statement(self) -> None:
        """Begins a new line if the writer is between statements."""
        if self._at_statement_level():
            self._flush()

    def _indentation(self) -> int:
        indentation = self._body_indents[-1] if self._body_indents else 0
        if self._scopes and self._scopes[-1] not in _BODY_SCOPES:
            indentation += self.CONTINUATION_WIDTH
        return indentation

    def _write(self, text: str, space: bool = True) -> None:
        if not self._line_started:
            self._line_indent = self._indentation()
            if self._at_statement_level():
                self._statement_indent = self._line_indent
            self._line = [' ' * self._line_indent]
            self._line_started = True
            self._needs_space = False

        if space and self._needs_space:
            self._line.append(' ')
        self._line.append(text)
        self._needs_space = True

    def _flush(self) -> None:
        if self._line_started:
            self._lines.append(''.join(self._line).rstrip())
        self._line = []
        self._line_started = False
        self._needs_space = False

    def _open_body(self, scope: _Scope) -> None:
        # Declarations may span several lines; their bodies are indented from
        # the first one. Blocks are indented from the line holding the colon.
        base = self._line_indent if scope is _Scope.BLOCK else (
            self._statement_indent
        )
        self._scopes.append(scope)
        self._body_indents.append(base + self.INDENT_WIDTH)

    def _close_body(self, scope: _Scope) -> None:
        self._flush()
        self._pop(scope)
        self._body_indents.pop()

    def _pop(self, expected: _Scope) -> None:
        if not self._scopes:
            raise WriterNestingError(
                f'cannot end {expected.value}: nothing is open'
            )
        if self._scopes[-1] is not expected:
            raise WriterNestingError(
                f'cannot end {expected.value}: innermost open construct is '
                f'a {self._scopes[-1].value}'
            )
        self._scopes.pop()

    def _require(self, *allowed: _Scope, operation: str) -> None:
        current = self._scopes[-1] if self._scopes else None
        if current not in allowed:
            where = current.value if current else 'file level'
            raise WriterNestingError(f'{operation} not allowed at {where}')

    def _require_statement_level(self, operation: str) -> None:
        if not self._at_statement_level():
            raise WriterNestingError(
                f'{operation} not allowed inside {self._scopes[-1].value}'
            )

    def _require_file_level(self, operation: str) -> None:
        if self._scopes:
            raise WriterNestingError(
                f'{operation} not allowed inside {self._scopes[-1].value}'
            )
