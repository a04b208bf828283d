import argparse
import sys

import bft_interp
from bft_interp import U8, U16, U32, Machine, VMError
from bft_types import DecoratedProgram, ParseError, Program

CELL_KINDS = {8: U8, 16: U16, 32: U32}


def positive_int(text):
    value = int(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"{text} is not a positive integer")
    return value


def build_parser():
    parser = argparse.ArgumentParser(
        prog="bft", description="Run a brainfuck program"
    )
    parser.add_argument("program", help="brainfuck source file")
    parser.add_argument(
        "-c",
        "--cells",
        type=positive_int,
        default=None,
        help=f"number of tape cells (default {bft_interp.DEFAULT_TAPE_SIZE})",
    )
    parser.add_argument(
        "-e",
        "--extensible",
        action="store_true",
        help="grow the tape instead of failing when moving past its end",
    )
    parser.add_argument(
        "--cell-bits", type=int, choices=sorted(CELL_KINDS), default=8
    )
    parser.add_argument(
        "--jit", action="store_true", help="compile to native code with LLVM"
    )
    parser.add_argument(
        "--list", action="store_true", help="print the decorated program and exit"
    )
    parser.add_argument("-d", "--debug", action="store_true", help="trace every step")
    return parser


def run(args, stdin, stdout):
    program = Program.from_file(args.program)
    decorated = DecoratedProgram.from_program(program)

    if args.list:
        stdout.write(str(decorated).encode("utf-8"))
        stdout.flush()
        return

    if args.jit:
        # Loading LLVM is only worth it when asked for
        import bft_jit

        bft_jit.execute(decorated, stdin, stdout, size=args.cells or 0, verbose=args.debug)
        return

    bft_interp.DEBUG = args.debug
    machine = Machine(args.cells, args.extensible, decorated, CELL_KINDS[args.cell_bits])
    machine.interpret(stdin, stdout)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.jit and (args.extensible or args.cell_bits != 8):
        parser.error("--jit runs a fixed tape of 8-bit cells")

    try:
        run(args, sys.stdin.buffer, sys.stdout.buffer)
    except (OSError, ParseError, VMError) as e:
        print(f"{parser.prog}: Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
