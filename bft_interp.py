import sys
from dataclasses import dataclass

from bft_types import PositionedInstruction, RawInstruction

DEBUG = False

# Traditional brainfuck tape length
DEFAULT_TAPE_SIZE = 30000

RUNNING = "running"
HALTED = "halted"
FAULTED = "faulted"


class CellKind(object):
    """
    Arithmetic for one tape cell: an unsigned integer of `bits` width that
    wraps on overflow. Subclass and override to get other cell behaviour.
    """

    def __init__(self, bits):
        if bits < 1:
            raise ValueError(f"cell width must be positive, got {bits}")
        self.bits = bits
        self.mask = (1 << bits) - 1
        self.zero = 0

    def increment(self, value):
        return (value + 1) & self.mask

    def decrement(self, value):
        return (value - 1) & self.mask

    def from_byte(self, byte):
        return byte & self.mask

    def to_byte(self, value):
        return value & 0xFF

    def is_zero(self, value):
        return value == 0

    def __repr__(self):
        return f"CellKind({self.bits})"


U8 = CellKind(8)
U16 = CellKind(16)
U32 = CellKind(32)


@dataclass(eq=False)
class VMError(Exception):
    instruction: PositionedInstruction
    file: str

    def __str__(self):
        inst = self.instruction
        return f"{self.file}:{inst.line}:{inst.column}: {self.message()}"


@dataclass(eq=False)
class SeekTooLow(VMError):
    def message(self):
        return "moved the data pointer below the first cell"


@dataclass(eq=False)
class SeekTooHigh(VMError):
    def message(self):
        return "moved the data pointer past the last cell of a fixed size tape"


@dataclass(eq=False)
class VMIOError(VMError):
    source: BaseException

    def message(self):
        return f"I/O failed: {self.source}"


def read_byte(stream):
    data = stream.read(1)
    if not data:
        raise EOFError("input stream is exhausted")
    return data[0]


def write_byte(stream, value):
    written = stream.write(bytes((value,)))
    if not written:
        raise OSError("output stream accepted no bytes")
    stream.flush()


class Machine(object):
    """
    A brainfuck virtual machine over a DecoratedProgram.

    The tape starts with `size` zero cells (DEFAULT_TAPE_SIZE when size is 0
    or None). When `may_grow` is set, moving right off the end appends one
    zero cell instead of faulting. The tape never shrinks.

    After a fault the tape and pointers are left as they were; build a new
    Machine to start over.
    """

    def __init__(self, size, may_grow, program, cell=U8):
        if not size:
            size = DEFAULT_TAPE_SIZE
        elif size < 0:
            raise ValueError(f"tape size must be positive, got {size}")

        self.program = program
        self.may_grow = may_grow
        self.cell = cell
        self.cells = [cell.zero] * size
        self.head = 0  # Pointer to memory
        self.pc = 0  # Instruction pointer
        self.state = RUNNING

    def interpret(self, input_stream, output_stream):
        """
        Run until the program ends. Raises a VMError subclass on the first
        fault; there is no partial result.
        """
        while self.step(input_stream, output_stream):
            pass

    def step(self, input_stream, output_stream):
        if self.pc >= len(self.program.instructions):
            self.state = HALTED
            return False

        op = self.program.instructions[self.pc]
        try:
            self._execute(op, input_stream, output_stream)
        except VMError:
            self.state = FAULTED
            raise

        # stdout belongs to the program, trace to stderr
        if DEBUG:
            print(
                f"*op={op}\n* pc={self.pc}\n* dataptr={self.head}\n"
                f"* cell={self.cells[self.head]}\n",
                file=sys.stderr,
            )

        return True

    def _execute(self, decorated, input_stream, output_stream):
        op = decorated.op
        cell = self.cell

        if op == RawInstruction.RIGHT:
            if self.head == len(self.cells) - 1:
                if not self.may_grow:
                    raise SeekTooHigh(decorated.instruction, self.program.file)
                self.cells.append(cell.zero)
            self.head += 1

        elif op == RawInstruction.LEFT:
            if self.head == 0:
                raise SeekTooLow(decorated.instruction, self.program.file)
            self.head -= 1

        elif op == RawInstruction.ADD:
            self.cells[self.head] = cell.increment(self.cells[self.head])

        elif op == RawInstruction.SUB:
            self.cells[self.head] = cell.decrement(self.cells[self.head])

        elif op == RawInstruction.OUT:
            try:
                write_byte(output_stream, cell.to_byte(self.cells[self.head]))
            except (OSError, ValueError) as e:
                raise VMIOError(decorated.instruction, self.program.file, e) from e

        elif op == RawInstruction.IN:
            try:
                value = read_byte(input_stream)
            except (OSError, EOFError, ValueError) as e:
                raise VMIOError(decorated.instruction, self.program.file, e) from e
            self.cells[self.head] = cell.from_byte(value)

        elif op == RawInstruction.OPEN_JMP:
            # Skip the whole loop, landing just past the matching close
            if cell.is_zero(self.cells[self.head]):
                self.pc = decorated.closer + 1
                return

        elif op == RawInstruction.CLOSE_JMP:
            # Jump back onto the open so it decides whether to go round again
            self.pc = decorated.opener
            return

        self.pc += 1
