"""
Solidity compilation wrapper.

Runs solc over a set of source files with a fixed set of flags and reshapes its
--combined-json output into Contract records (bytecode plus ABI and natspec
documentation).

Usage:
    >>> import solc_compiler
    >>> contracts = solc_compiler.compile_solidity("Token.sol", "Owned.sol")
    >>> contracts["Token"].code
    '0x6060...'
"""
import json
import re
from dataclasses import dataclass
from typing import Any

from hexbytes import HexBytes

from solc_backend import CompilerBackend, SolcError, SolcNotFoundError, get_default_backend

# --- Configuration ---
VERSION_REGEXP = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+")
SOLC_PARAMS = [
    "--combined-json", "bin,abi,userdoc,devdoc",
    "--add-std",  # include standard lib contracts
    "--optimize", # code optimizer switched on
]
LANGUAGE = "Solidity"

__all__ = [
    "Contract",
    "ContractInfo",
    "Solidity",
    "SolcError",
    "SolcNotFoundError",
    "NoSourceFilesError",
    "CompilerFailureError",
    "MalformedOutputError",
    "solidity_version",
    "compile_solidity",
    "build_compile_args",
    "slurp_files",
]


class NoSourceFilesError(SolcError, ValueError):
    """compile_solidity() was called without any source file."""

    def __init__(self):
        super().__init__("solc: no source files given")


class CompilerFailureError(SolcError):
    """solc exited with a non-zero status."""

    def __init__(self, status: int, output: str):
        self.status = status
        self.output = output
        super().__init__(f"solc: exit status {status}\n{output}".rstrip())


class MalformedOutputError(SolcError):
    """The combined JSON, or one of the JSON documents nested in it, did not parse."""

    def __init__(self, field: str, reason: str, contract: str | None = None):
        self.field = field
        self.contract = contract
        where = f" of contract '{contract}'" if contract else ""
        super().__init__(f"solc: error reading {field}{where} ({reason})")


@dataclass(frozen=True)
class Solidity:
    """Version information reported by solc --version."""
    version: str
    full_version: str


@dataclass(frozen=True)
class ContractInfo:
    source: str
    language: str
    language_version: str
    compiler_version: str
    compiler_options: str
    abi_definition: Any
    user_doc: Any
    developer_doc: Any

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "language": self.language,
            "languageVersion": self.language_version,
            "compilerVersion": self.compiler_version,
            "compilerOptions": self.compiler_options,
            "abiDefinition": self.abi_definition,
            "userDoc": self.user_doc,
            "developerDoc": self.developer_doc,
        }


@dataclass(frozen=True)
class Contract:
    code: str
    info: ContractInfo

    @property
    def bytecode(self) -> HexBytes:
        """
        Deployable bytecode as raw bytes.

        Raises:
            ValueError: if the code still holds unlinked library placeholders
                (`__File.sol:Lib____...`).
        """
        return HexBytes(self.code)

    @property
    def is_linked(self) -> bool:
        return "__" not in self.code

    @property
    def size(self) -> int:
        """Length of the code in bytes, counting placeholders as the addresses they stand for."""
        return (len(self.code) - 2) // 2

    def to_dict(self) -> dict:
        return {"code": self.code, "info": self.info.to_dict()}


def _short_version(text: str) -> str:
    match = VERSION_REGEXP.search(text)
    return match.group(0) if match else ""


def _lookup(obj: dict, key: str, default=None):
    # solc has emitted both "contracts" and "Contracts" style keys over the years.
    if key in obj:
        return obj[key]
    lowered = key.lower()
    for k, v in obj.items():
        if k.lower() == lowered:
            return v
    return default


def solidity_version(backend: CompilerBackend | None = None) -> Solidity:
    """
    Runs solc --version and parses its banner.

    A banner without an X.Y.Z triple leaves `version` empty rather than failing.
    """
    backend = backend or get_default_backend()
    result = backend.run(["--version"])
    banner = result.stdout.decode("utf-8", errors="replace")
    return Solidity(version=_short_version(banner), full_version=banner)


def slurp_files(source_files) -> str:
    """
    Concatenates the raw contents of `source_files` in order.

    Raises:
        OSError: if any file cannot be read.
    """
    concat = bytearray()
    for path in source_files:
        with open(path, "rb") as f:
            concat.extend(f.read())
    return concat.decode("utf-8", errors="surrogateescape")


def build_compile_args(source_files) -> list[str]:
    """The full solc argument list for compiling `source_files`."""
    return [*SOLC_PARAMS, "--", *(str(path) for path in source_files)]


def _parse_nested(raw, field: str, contract: str):
    if not isinstance(raw, str):
        raise MalformedOutputError(field, f"expected a JSON string, got {type(raw).__name__}", contract)
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(field, str(e), contract) from e


def compile_solidity(*source_files, backend: CompilerBackend | None = None) -> dict[str, Contract]:
    """
    Compiles all given Solidity source files.

    Each path is handed to solc separately; the concatenated file contents are
    only kept as provenance in every resulting ContractInfo.

    Args:
        *source_files: One or more paths to .sol files.
        backend: Compiler backend to use. Defaults to get_default_backend().

    Returns:
        A dict mapping each contract name reported by solc to its Contract.

    Raises:
        NoSourceFilesError: if no file was given.
        OSError: if a source file cannot be read.
        CompilerFailureError: if solc exits with a non-zero status.
        MalformedOutputError: if the combined JSON or a nested ABI/doc does not parse.
    """
    if not source_files:
        raise NoSourceFilesError()
    source = slurp_files(source_files)

    backend = backend or get_default_backend()
    result = backend.run(build_compile_args(source_files))
    if not result.ok:
        diagnostics = result.stderr or result.stdout
        raise CompilerFailureError(result.status, diagnostics.decode("utf-8", errors="replace"))

    try:
        output = json.loads(result.stdout)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedOutputError("output", str(e)) from e
    if not isinstance(output, dict):
        raise MalformedOutputError("output", f"expected a JSON object, got {type(output).__name__}")

    short_version = _short_version(str(_lookup(output, "Version", "")))
    compiler_options = " ".join(SOLC_PARAMS)

    compiled = _lookup(output, "Contracts")
    if compiled is None:
        compiled = {}
    if not isinstance(compiled, dict):
        raise MalformedOutputError("contracts", f"expected a JSON object, got {type(compiled).__name__}")

    # Compilation succeeded, assemble and return the contracts.
    contracts = {}
    for name, info in compiled.items():
        if not isinstance(info, dict):
            raise MalformedOutputError("contracts", f"expected a JSON object, got {type(info).__name__}", name)
        bin_hex = _lookup(info, "Bin")
        if bin_hex is None:
            bin_hex = ""
        elif not isinstance(bin_hex, str):
            raise MalformedOutputError("bin", f"expected a hex string, got {type(bin_hex).__name__}", name)
        abi = _parse_nested(_lookup(info, "Abi", ""), "abi definition", name)
        userdoc = _parse_nested(_lookup(info, "Userdoc", ""), "user doc", name)
        devdoc = _parse_nested(_lookup(info, "Devdoc", ""), "dev doc", name)
        contracts[name] = Contract(
            code="0x" + bin_hex,
            info=ContractInfo(
                source=source,
                language=LANGUAGE,
                language_version=short_version,
                compiler_version=short_version,
                compiler_options=compiler_options,
                abi_definition=abi,
                user_doc=userdoc,
                developer_doc=devdoc,
            ),
        )
    return contracts
