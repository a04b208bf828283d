from __future__ import annotations

from pathlib import Path

import pytest

from bft_types import DecoratedProgram, tokenize

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


@pytest.fixture()
def hello_path() -> Path:
    return EXAMPLES / "hello.bf"


@pytest.fixture()
def decorate():
    def _decorate(text: str | bytes, file: str = "test.bf") -> DecoratedProgram:
        return DecoratedProgram.from_program(tokenize(file, text))

    return _decorate
