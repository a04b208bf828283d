from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def _run(args: list[str], *, stdin: bytes = b"") -> subprocess.CompletedProcess[bytes]:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, str(ROOT / "bft.py"), *args],
        input=stdin,
        env=env,
        capture_output=True,
        check=False,
    )


def test_cli_hello(hello_path: Path):
    proc = _run([str(hello_path)])
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout == b"Hello World!\n"


def test_cli_jit_hello(hello_path: Path):
    proc = _run(["--jit", str(hello_path)])
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout == b"Hello World!\n"


def test_cli_echo(tmp_path: Path):
    p = tmp_path / "echo.bf"
    p.write_bytes(b",.,.")
    proc = _run([str(p)], stdin=b"yo")
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout == b"yo"


def test_cli_parse_error(tmp_path: Path):
    p = tmp_path / "bad.bf"
    p.write_bytes(b"+\n+]")
    proc = _run([str(p)])
    assert proc.returncode == 1
    assert proc.stderr.decode().strip() == f"bft: Error: {p}:2:2: ']' has no matching '['"


def test_cli_fixed_tape_overflow(tmp_path: Path):
    p = tmp_path / "grow.bf"
    p.write_bytes(b">>")
    proc = _run(["-c", "2", str(p)])
    assert proc.returncode == 1
    assert f"{p}:1:2" in proc.stderr.decode()

    proc = _run(["-c", "2", "-e", str(p)])
    assert proc.returncode == 0, proc.stderr


def test_cli_missing_file(tmp_path: Path):
    proc = _run([str(tmp_path / "nope.bf")])
    assert proc.returncode == 1
    assert proc.stderr.decode().startswith("bft: Error: ")


def test_cli_rejects_non_positive_cells(hello_path: Path):
    proc = _run(["-c", "0", str(hello_path)])
    assert proc.returncode == 2


def test_cli_jit_rejects_extensible(hello_path: Path):
    proc = _run(["--jit", "-e", str(hello_path)])
    assert proc.returncode == 2


def test_cli_list(tmp_path: Path):
    p = tmp_path / "loop.bf"
    p.write_bytes(b"[-]")
    proc = _run(["--list", str(p)])
    assert proc.returncode == 0, proc.stderr
    assert proc.stdout.decode().splitlines()[0] == f"{p}:1:1 Start looping (target: 2)"
