import os
from dataclasses import dataclass
from enum import IntEnum

"""
Brainfuck source -> positioned instructions -> decorated (loop resolved) program
+----+-----------+---------------------+
| BF |   Op      |          C          |
+----+-----------+---------------------+
| >  | RIGHT     | p++;                |
| <  | LEFT      | p--;                |
| +  | ADD       | mem[p]++;           |
| -  | SUB       | mem[p]--;           |
| .  | OUT       | putchar(mem[p]);    |
| ,  | IN        | mem[p] = getchar(); |
| [  | OPEN_JMP  | while(mem[p]) {     |
| ]  | CLOSE_JMP | }                   |
+----+-----------+---------------------+
"""


class RawInstruction(IntEnum):
    RIGHT = 0
    LEFT = 1
    ADD = 2
    SUB = 3
    OUT = 4
    IN = 5
    OPEN_JMP = 6
    CLOSE_JMP = 7

    @classmethod
    def from_byte(cls, byte):
        """
        Classify a single source byte, None for anything outside the alphabet
        """
        return instruction_opcode_map.get(byte)

    @property
    def symbol(self):
        return opcode_symbol_map[self]

    def __str__(self):
        return opcode_name_map[self]


# Used to go from a source byte -> instruction
instruction_opcode_map = {
    ord(">"): RawInstruction.RIGHT,
    ord("<"): RawInstruction.LEFT,
    ord("+"): RawInstruction.ADD,
    ord("-"): RawInstruction.SUB,
    ord("."): RawInstruction.OUT,
    ord(","): RawInstruction.IN,
    ord("["): RawInstruction.OPEN_JMP,
    ord("]"): RawInstruction.CLOSE_JMP,
}

opcode_symbol_map = {op: chr(byte) for byte, op in instruction_opcode_map.items()}

# Used for diagnostics and program listings
opcode_name_map = {
    RawInstruction.RIGHT: "Increment current location",
    RawInstruction.LEFT: "Decrement current location",
    RawInstruction.ADD: "Increment the byte at the current location",
    RawInstruction.SUB: "Decrement the byte at the current location",
    RawInstruction.OUT: "Output the byte at the current location",
    RawInstruction.IN: "Store a byte of input at the current location",
    RawInstruction.OPEN_JMP: "Start looping",
    RawInstruction.CLOSE_JMP: "Stop looping",
}


@dataclass(frozen=True)
class PositionedInstruction:
    """
    An instruction plus the 1-based line and column it was read from.
    Columns count bytes, not decoded characters.
    """

    op: RawInstruction
    line: int
    column: int

    def __str__(self):
        return f"{self.line}:{self.column} {self.op!s}"


@dataclass(frozen=True)
class Program:
    """
    Every instruction of one source file, in source order. Brackets have not
    been checked yet, see resolve().
    """

    file: str
    instructions: tuple

    @classmethod
    def from_file(cls, path):
        with open(path, "rb") as f:
            return tokenize(os.fspath(path), f.read())

    def __len__(self):
        return len(self.instructions)

    def __str__(self):
        return "".join(f"{self.file}:{inst}\n" for inst in self.instructions)


def tokenize(file, text):
    # Work on raw bytes so undecodable input is still accepted
    if isinstance(text, str):
        text = text.encode("utf-8")

    instructions = []
    for line_index, line in enumerate(text.split(b"\n")):
        for column_index, byte in enumerate(line):
            op = RawInstruction.from_byte(byte)
            if op is not None:
                instructions.append(
                    PositionedInstruction(op, line_index + 1, column_index + 1)
                )

    return Program(str(file), tuple(instructions))


@dataclass(frozen=True)
class DecoratedInstruction:
    instruction: PositionedInstruction

    @property
    def op(self):
        return self.instruction.op

    def __str__(self):
        return str(self.instruction)


@dataclass(frozen=True)
class Instruction(DecoratedInstruction):
    """
    Any non-bracket instruction, passed through from the Program
    """


@dataclass(frozen=True)
class OpenLoop(DecoratedInstruction):
    # Index of the matching CloseLoop in the decorated sequence
    closer: int
    closer_instruction: PositionedInstruction

    def __str__(self):
        return f"{self.instruction} (target: {self.closer})"


@dataclass(frozen=True)
class CloseLoop(DecoratedInstruction):
    # Index of the matching OpenLoop in the decorated sequence
    opener: int
    opener_instruction: PositionedInstruction

    def __str__(self):
        return f"{self.instruction} (target: {self.opener})"


@dataclass(frozen=True)
class DecoratedProgram:
    """
    A validated program where every loop bracket knows the index of its
    partner, so jumps never need to scan the instruction stream.

    Immutable, so a single instance can be shared by any number of machines.
    """

    file: str
    instructions: tuple

    @classmethod
    def from_program(cls, program):
        return resolve(program)

    def __len__(self):
        return len(self.instructions)

    def __getitem__(self, index):
        return self.instructions[index]

    def __str__(self):
        return "".join(f"{self.file}:{inst}\n" for inst in self.instructions)


@dataclass(eq=False)
class ParseError(Exception):
    file: str

    def __str__(self):
        return self.message()


@dataclass(eq=False)
class UnopenedBracket(ParseError):
    closer: PositionedInstruction

    def message(self):
        return (
            f"{self.file}:{self.closer.line}:{self.closer.column}: "
            "']' has no matching '['"
        )


@dataclass(eq=False)
class UnclosedBracket(ParseError):
    opener: PositionedInstruction

    def message(self):
        return (
            f"{self.file}:{self.opener.line}:{self.opener.column}: "
            "'[' is never closed"
        )


def resolve(program):
    """
    Match every '[' with its ']' and return a DecoratedProgram.

    Raises UnopenedBracket for the first ']' without an open loop, or
    UnclosedBracket for the innermost '[' still open at the end of input.
    """
    decorated = []
    loop_starts = []

    for index, inst in enumerate(program.instructions):
        if inst.op == RawInstruction.OPEN_JMP:
            # If we get a loop start, record this to be popped. The entry is
            # filled in when we encounter the matching CLOSE_JMP
            loop_starts.append((index, inst))
            decorated.append(None)

        elif inst.op == RawInstruction.CLOSE_JMP:
            if not loop_starts:
                raise UnopenedBracket(file=program.file, closer=inst)
            loop_start, opener = loop_starts.pop()
            decorated[loop_start] = OpenLoop(opener, index, inst)
            decorated.append(CloseLoop(inst, loop_start, opener))

        else:
            decorated.append(Instruction(inst))

    if loop_starts:
        _, opener = loop_starts[-1]
        raise UnclosedBracket(file=program.file, opener=opener)

    assert all(d is not None for d in decorated), "unpatched loop start"

    return DecoratedProgram(program.file, tuple(decorated))
