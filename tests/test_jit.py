from __future__ import annotations

import io

import pytest

from bft_interp import SeekTooHigh, SeekTooLow, VMIOError
from bft_jit import compile_program, execute
from bft_types import DecoratedProgram, Program


class ShortWriter:
    def write(self, data: bytes) -> int:
        return 0

    def flush(self) -> None:
        pass


def _execute(program, *, size=0, stdin=b""):
    out = io.BytesIO()
    tape = execute(program, io.BytesIO(stdin), out, size=size)
    return tape, out.getvalue()


def test_compiled_module_has_entry_point(decorate):
    ir_text = str(compile_program(decorate("+[-]"), size=4))
    assert "bft_jit_exec" in ir_text


def test_hello_world(hello_path):
    program = DecoratedProgram.from_program(Program.from_file(hello_path))
    tape, out = _execute(program)
    assert out == b"Hello World!\n"
    assert len(tape) == 30000


def test_loops_and_wrapping(decorate):
    tape, _ = _execute(decorate("+++[>+++[>++<-]<-]>>>-"), size=4)
    assert tape == bytes([0, 0, 18, 255])


def test_echo_input(decorate):
    _, out = _execute(decorate(",.,."), stdin=b"ok")
    assert out == b"ok"


def test_seek_too_low(decorate):
    with pytest.raises(SeekTooLow) as exc:
        _execute(decorate("+\n<"), size=2)
    assert (exc.value.instruction.line, exc.value.instruction.column) == (2, 1)


def test_seek_too_high(decorate):
    with pytest.raises(SeekTooHigh) as exc:
        _execute(decorate(">>"), size=2)
    assert exc.value.instruction.column == 2


def test_exhausted_input(decorate):
    with pytest.raises(VMIOError) as exc:
        _execute(decorate(","))
    assert isinstance(exc.value.source, EOFError)


def test_short_write(decorate):
    with pytest.raises(VMIOError):
        execute(decorate("."), io.BytesIO(), ShortWriter())
