import sys
from ctypes import CFUNCTYPE, POINTER, c_int32, c_int64, c_uint8, c_void_p, cast

import llvmlite.binding as llvm
import llvmlite.ir as ir

from bft_interp import (
    DEFAULT_TAPE_SIZE,
    SeekTooHigh,
    SeekTooLow,
    VMIOError,
    read_byte,
    write_byte,
)
from bft_types import RawInstruction

int8 = ir.IntType(8)
int32 = ir.IntType(32)
int64 = ir.IntType(64)
int8ptr = int8.as_pointer()

ENTRY = "bft_jit_exec"
PUT_BYTE = "bft_put_byte"
GET_BYTE = "bft_get_byte"

# Returned by the compiled function when it ran off the end of the program,
# any other value is the index of the faulting instruction
NO_FAULT = -1

IO_ERRORS = (OSError, EOFError, ValueError)


def ir_put_byte(builder, value):
    mod = builder.module
    fn_type = ir.FunctionType(int32, [int8])
    try:
        fn = mod.get_global(PUT_BYTE)
    except KeyError:
        fn = ir.Function(mod, fn_type, name=PUT_BYTE)

    return builder.call(fn, [value])


def ir_get_byte(builder):
    mod = builder.module
    fn_type = ir.FunctionType(int32, [])
    try:
        fn = mod.get_global(GET_BYTE)
    except KeyError:
        fn = ir.Function(mod, fn_type, name=GET_BYTE)

    return builder.call(fn, [])


def _element_addr(irb, tape, dataptr_addr):
    dataptr = irb.load(dataptr_addr, "dataptr", typ=int64)
    return irb.gep(
        tape, [dataptr], inbounds=True, name="element_addr", source_etype=int8
    )


def _fault_unless(irb, ok, index):
    """
    Return `index` from the function unless `ok` holds, then carry on emitting
    code in a fresh block
    """
    continue_block = irb.append_basic_block("no_fault")
    fault_block = irb.append_basic_block("fault")
    irb.cbranch(ok, continue_block, fault_block)

    irb.position_at_end(fault_block)
    irb.ret(int64(index))

    irb.position_at_end(continue_block)


def compile_program(program, size=DEFAULT_TAPE_SIZE):
    """
    Emit `i64 bft_jit_exec(i8* tape)` for a DecoratedProgram over a fixed
    tape of `size` cells
    """
    module = ir.Module(name=program.file)
    module.triple = llvm.get_process_triple()
    function_type = ir.FunctionType(int64, [int8ptr])
    function = ir.Function(module, function_type, name=ENTRY)
    tape = function.args[0]

    bb_entry = function.append_basic_block("entry")
    irb = ir.IRBuilder(bb_entry)

    dataptr_addr = irb.alloca(int64)
    irb.store(int64(0), dataptr_addr)

    # Loop blocks keyed by the index of their opening bracket
    loops = {}

    for index, decorated in enumerate(program.instructions):
        op = decorated.op

        if op == RawInstruction.RIGHT:
            dataptr = irb.load(dataptr_addr, "dataptr", typ=int64)
            in_bounds = irb.icmp_unsigned("<", dataptr, int64(size - 1), "in_bounds")
            _fault_unless(irb, in_bounds, index)
            inc_dataptr = irb.add(dataptr, int64(1), "inc_dataptr")
            irb.store(inc_dataptr, dataptr_addr)

        elif op == RawInstruction.LEFT:
            dataptr = irb.load(dataptr_addr, "dataptr", typ=int64)
            in_bounds = irb.icmp_unsigned("!=", dataptr, int64(0), "in_bounds")
            _fault_unless(irb, in_bounds, index)
            dec_dataptr = irb.sub(dataptr, int64(1), "dec_dataptr")
            irb.store(dec_dataptr, dataptr_addr)

        elif op == RawInstruction.ADD:
            element_addr = _element_addr(irb, tape, dataptr_addr)
            element = irb.load(element_addr, "element", typ=int8)
            inc_element = irb.add(element, int8(1), "inc_element")
            irb.store(inc_element, element_addr)

        elif op == RawInstruction.SUB:
            element_addr = _element_addr(irb, tape, dataptr_addr)
            element = irb.load(element_addr, "element", typ=int8)
            dec_element = irb.sub(element, int8(1), "dec_element")
            irb.store(dec_element, element_addr)

        elif op == RawInstruction.OUT:
            element_addr = _element_addr(irb, tape, dataptr_addr)
            element = irb.load(element_addr, "element", typ=int8)
            status = ir_put_byte(irb, element)
            written = irb.icmp_signed("==", status, int32(0), "written")
            _fault_unless(irb, written, index)

        elif op == RawInstruction.IN:
            user_input = ir_get_byte(irb)
            have_input = irb.icmp_signed(">=", user_input, int32(0), "have_input")
            _fault_unless(irb, have_input, index)
            user_input_i8 = irb.trunc(user_input, int8, "user_input_i8")
            element_addr = _element_addr(irb, tape, dataptr_addr)
            irb.store(user_input_i8, element_addr)

        elif op == RawInstruction.OPEN_JMP:
            element_addr = _element_addr(irb, tape, dataptr_addr)
            element = irb.load(element_addr, "element", typ=int8)
            cmp = irb.icmp_unsigned("==", element, int8(0), "compare_zero")

            loop_body_block = irb.append_basic_block("loop_body")
            post_loop_block = irb.append_basic_block("post_loop")

            irb.cbranch(cmp, post_loop_block, loop_body_block)

            loops[index] = (loop_body_block, post_loop_block)
            irb.position_at_end(loop_body_block)

        elif op == RawInstruction.CLOSE_JMP:
            loop_body_block, post_loop_block = loops.pop(decorated.opener)

            element_addr = _element_addr(irb, tape, dataptr_addr)
            element = irb.load(element_addr, "element", typ=int8)
            cmp = irb.icmp_unsigned("!=", element, int8(0), "compare_zero")

            irb.cbranch(cmp, loop_body_block, post_loop_block)
            irb.position_at_end(post_loop_block)

    irb.ret(int64(NO_FAULT))

    return module


def execute(program, input_stream, output_stream, size=0, verbose=False):
    """
    Compile a DecoratedProgram to native code and run it over a fixed tape of
    8-bit cells. Faults raise the same VMError subclasses as the interpreter.
    Returns the final tape.
    """
    if not size:
        size = DEFAULT_TAPE_SIZE
    elif size < 0:
        raise ValueError(f"tape size must be positive, got {size}")

    module = compile_program(program, size)

    if verbose:
        print("====== LLVM IR", file=sys.stderr)
        print(module, file=sys.stderr)

    llvm.initialize_native_target()
    llvm.initialize_native_asmprinter()

    failures = []

    @CFUNCTYPE(c_int32, c_uint8)
    def put_byte(value):
        try:
            write_byte(output_stream, value)
        except Exception as e:
            failures.append(e)
            return 1
        return 0

    @CFUNCTYPE(c_int32)
    def get_byte():
        try:
            return read_byte(input_stream)
        except Exception as e:
            failures.append(e)
            return -1

    llvm.add_symbol(PUT_BYTE, cast(put_byte, c_void_p).value)
    llvm.add_symbol(GET_BYTE, cast(get_byte, c_void_p).value)

    llvm_module = llvm.parse_assembly(str(module))
    llvm_module.verify()

    tape = (c_uint8 * size)()
    tm = llvm.Target.from_default_triple().create_target_machine()
    with llvm.create_mcjit_compiler(llvm_module, tm) as ee:
        ee.finalize_object()

        if verbose:
            print("============ Assembly", file=sys.stderr)
            print(tm.emit_assembly(llvm_module), file=sys.stderr)

        cfptr = ee.get_function_address(ENTRY)
        cfunc = CFUNCTYPE(c_int64, POINTER(c_uint8))(cfptr)

        fault = cfunc(tape)

    if fault != NO_FAULT:
        decorated = program.instructions[fault]
        if decorated.op == RawInstruction.LEFT:
            raise SeekTooLow(decorated.instruction, program.file)
        if decorated.op == RawInstruction.RIGHT:
            raise SeekTooHigh(decorated.instruction, program.file)

        source = failures[-1]
        if not isinstance(source, IO_ERRORS):
            raise source
        raise VMIOError(decorated.instruction, program.file, source) from source

    return bytes(tape)
