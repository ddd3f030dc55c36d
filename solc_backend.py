"""
Solidity compiler backends.

A backend knows how to hand an argument list to the solc compiler and collect
what it produced. Two are provided:

* ExecutableBackend runs a solc binary as a child process. The binary is either
  given explicitly or located through py-solc-x.
* LibSolcBackend calls `int solc(int argc, char **argv)` inside a shared
  library loaded with ctypes.

Setup:
1. Install the py-solc-x library:
   pip install py-solc-x
2. Install a compiler that still understands --add-std:
   solc-wrapper install 0.4.26
"""
import ctypes
import ctypes.util
import os
import subprocess
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass

import solcx
from packaging.version import Version
from solcx.exceptions import SolcNotInstalled
from solcx.install import get_executable

# --- Configuration ---
SOLC_BINARY = os.environ.get("SOLC_BINARY") or None      # explicit solc executable
SOLC_VERSION = os.environ.get("SOLC_VERSION") or None    # py-solc-x managed version
LIBSOLC_PATH = os.environ.get("LIBSOLC_PATH") or None    # shared library exporting solc()
DEFAULT_SOLC_VERSION = "0.4.26" # Last release that accepts --add-std


class SolcError(Exception):
    """Base class for everything that goes wrong while driving the compiler."""


class SolcNotFoundError(SolcError):
    """The solc binary or shared library could not be located or started."""


@dataclass(frozen=True)
class BackendResult:
    status: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.status == 0


class CompilerBackend(ABC):
    """Runs the compiler with a list of command line arguments."""

    @abstractmethod
    def run(self, args: list[str]) -> BackendResult:
        """
        Invokes the compiler once.

        Args:
            args: Arguments as they would follow `solc` on a command line.

        Returns:
            The exit status together with everything written to stdout and stderr.
        """


class ExecutableBackend(CompilerBackend):
    """Runs a solc executable with subprocess."""

    def __init__(self, solc_binary: str | None = None, solc_version: str | None = None):
        self.solc_binary = solc_binary or SOLC_BINARY
        self.solc_version = solc_version or SOLC_VERSION

    def executable(self) -> str:
        if self.solc_binary:
            return str(self.solc_binary)
        try:
            return str(get_executable(self.solc_version))
        except SolcNotInstalled as e:
            raise SolcNotFoundError(
                f"No solc executable available ({e}). Run 'solc-wrapper install' or set SOLC_BINARY."
            ) from e

    def run(self, args: list[str]) -> BackendResult:
        cmd = [self.executable(), *args]
        try:
            proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            raise SolcNotFoundError(f"Could not run '{cmd[0]}': {e}") from e
        return BackendResult(proc.returncode, proc.stdout, proc.stderr)


@contextmanager
def native_argv(args: list[str]):
    """
    Builds a NULL-terminated `char *argv[]` for a native call.

    The argument buffers are dropped when the block exits, whichever way it
    exits. The memory itself is freed once the caller also lets go of the
    yielded array.

    Yields:
        A tuple (argc, argv) ready to pass to the native function.
    """
    buffers = [ctypes.create_string_buffer(os.fsencode(arg)) for arg in args]
    argv = (ctypes.c_char_p * (len(buffers) + 1))()
    try:
        for i, buf in enumerate(buffers):
            argv[i] = ctypes.addressof(buf)
        argv[len(buffers)] = None
        yield len(buffers), argv
    finally:
        buffers.clear()


@contextmanager
def _captured_fd(fd: int):
    """Points file descriptor `fd` at a temporary file and collects what was written to it."""
    captured = bytearray()
    saved = os.dup(fd)
    with tempfile.TemporaryFile() as tmp:
        os.dup2(tmp.fileno(), fd)
        try:
            yield captured
        finally:
            os.dup2(saved, fd)
            os.close(saved)
            tmp.seek(0)
            captured.extend(tmp.read())


class LibSolcBackend(CompilerBackend):
    """Calls solc() exported by a shared library, in-process."""

    # stdout/stderr redirection is process wide, one call at a time.
    _lock = threading.Lock()

    def __init__(self, library_path: str | None = None):
        self.library_path = library_path or LIBSOLC_PATH or ctypes.util.find_library("solc")
        if not self.library_path:
            raise SolcNotFoundError("No solc shared library found. Set LIBSOLC_PATH.")
        try:
            self._lib = ctypes.CDLL(self.library_path)
        except OSError as e:
            raise SolcNotFoundError(f"Could not load '{self.library_path}': {e}") from e
        self._solc = self._lib.solc
        self._solc.argtypes = [ctypes.c_int, ctypes.POINTER(ctypes.c_char_p)]
        self._solc.restype = ctypes.c_int
        self._libc = ctypes.CDLL(ctypes.util.find_library("c"))

    def run(self, args: list[str]) -> BackendResult:
        with self._lock, native_argv(args) as (argc, argv):
            with _captured_fd(1) as out, _captured_fd(2) as err:
                try:
                    status = self._solc(argc, argv)
                finally:
                    self._libc.fflush(None)
        return BackendResult(status, bytes(out), bytes(err))


def get_default_backend() -> CompilerBackend:
    """The native library when LIBSOLC_PATH is configured, the solc executable otherwise."""
    if LIBSOLC_PATH:
        return LibSolcBackend(LIBSOLC_PATH)
    return ExecutableBackend()


def ensure_solc(version: str | None = None):
    """
    Makes a solc executable available through py-solc-x and selects it.

    An already installed compiler with the same major.minor as `version`
    (DEFAULT_SOLC_VERSION when omitted) is preferred; otherwise the exact
    version is installed.

    Returns:
        The selected solcx Version.
    """
    wanted = Version(version or DEFAULT_SOLC_VERSION)
    target_version = None
    for v in solcx.get_installed_solc_versions():
        if v == wanted:
            target_version = v
            break
        if target_version is None and (v.major, v.minor) == (wanted.major, wanted.minor):
            target_version = v

    if not target_version:
        print(f"No suitable {wanted.major}.{wanted.minor}.x solc version found. Attempting to install {wanted}...")
        solcx.install_solc(wanted)
        target_version = wanted
    solcx.set_solc_version(target_version, silent=True)
    print(f"Using solc version: {solcx.get_solc_version()}")
    return target_version
