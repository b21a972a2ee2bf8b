"""Compiler selection and compilation for trident-deployments library."""

import json
import logging
import posixpath
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union

import solcx
from solcx.exceptions import SolcError, SolcInstallationError

from .constants import COMPILERS
from .exceptions import CompilationError, ConfigurationError, InvalidPragmaError, NoCompatibleCompilerError
from .types import CompiledContract, CompilerProfile

logger = logging.getLogger(__name__)

Version = Tuple[int, int, int]

_PRAGMA = re.compile(r"pragma\s+solidity\s+([^;]+);")
_IMPORT = re.compile(r"""import\s+(?:[^"';]*?\s+from\s+)?["']([^"']+)["']""")
_COMMENTS = re.compile(r"//[^\n]*|/\*.*?\*/", re.S)
_COMPARATOR = re.compile(r"^(\^|~|>=|<=|>|<|=)?\s*v?(\d+)(?:\.(\d+|x|\*))?(?:\.(\d+|x|\*))?$")
_CONSOLE_IMPORT = re.compile(r"""^\s*import\s+["']hardhat/console\.sol["']\s*;\s*$""", re.M)
_CONSOLE_CALL = re.compile(r"\bconsole\.log\s*\(")


def parse_version(version: str) -> Version:
    """Parse a full "X.Y.Z" version string into a tuple."""
    parts = version.strip().lstrip("v").split("+")[0].split(".")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise InvalidPragmaError(f"Invalid compiler version '{version}'")
    return int(parts[0]), int(parts[1]), int(parts[2])


def _comparator_bounds(token: str) -> List[Tuple[str, Version]]:
    """
    Translate one comparator (e.g., "^0.6.2", "<0.7") into primitive bounds.

    Partial versions follow npm semantics: "<=0.6" is "<0.7.0", "=0.6" is
    ">=0.6.0 <0.7.0".
    """
    match = _COMPARATOR.match(token)
    if not match:
        raise InvalidPragmaError(f"Invalid version comparator '{token}'")
    op, major_s, minor_s, patch_s = match.groups()
    op = op or "="
    major = int(major_s)
    minor = None if minor_s in (None, "x", "*") else int(minor_s)
    patch = None if patch_s in (None, "x", "*") or minor is None else int(patch_s)

    low: Version = (major, minor or 0, patch or 0)
    # Exclusive upper bound for the precision that was given
    if minor is None:
        partial_high: Version = (major + 1, 0, 0)
    elif patch is None:
        partial_high = (major, minor + 1, 0)
    else:
        partial_high = (major, minor, patch + 1)

    if op == "^":
        if major > 0 or minor is None:
            return [(">=", low), ("<", (major + 1, 0, 0))]
        if minor > 0 or patch is None:
            return [(">=", low), ("<", (0, minor + 1, 0))]
        return [(">=", low), ("<", (0, 0, patch + 1))]
    if op == "~":
        if minor is None:
            return [(">=", low), ("<", (major + 1, 0, 0))]
        return [(">=", low), ("<", (major, minor + 1, 0))]
    if op == "=":
        return [(">=", low), ("<", partial_high)]
    if op == ">=":
        return [(">=", low)]
    if op == ">":
        return [(">=", partial_high)]
    if op == "<":
        return [("<", low)]
    # "<="
    return [("<", partial_high)]


def _tokens(expression: str) -> List[str]:
    # Glue operators to their versions: ">= 0.6.0" -> ">=0.6.0"
    glued = re.sub(r"(\^|~|>=|<=|>|<|=)\s+", r"\1", expression.strip())
    return glued.split()


def parse_pragma(expression: str) -> List[List[Tuple[str, Version]]]:
    """
    Parse a version pragma expression into a disjunction of conjunctions.

    Args:
        expression: e.g. ">=0.6.0 <0.7.0", "^0.8.0", "0.5.17 || ^0.6.0"

    Returns:
        List of alternatives, each a list of (">=" | "<", version) bounds

    Raises:
        InvalidPragmaError: If the expression cannot be parsed
    """
    alternatives = []
    for alternative in expression.split("||"):
        tokens = _tokens(alternative)
        if not tokens:
            raise InvalidPragmaError(f"Empty version range in pragma '{expression}'")
        bounds: List[Tuple[str, Version]] = []
        i = 0
        while i < len(tokens):
            if i + 2 < len(tokens) and tokens[i + 1] == "-":
                # Hyphen range: "a - b" == ">=a <=b"
                bounds.extend(_comparator_bounds(">=" + tokens[i]))
                bounds.extend(_comparator_bounds("<=" + tokens[i + 2]))
                i += 3
                continue
            bounds.extend(_comparator_bounds(tokens[i]))
            i += 1
        alternatives.append(bounds)
    return alternatives


def satisfies(version: Union[str, Version], expression: str) -> bool:
    """Check whether a compiler version satisfies a pragma expression."""
    v = parse_version(version) if isinstance(version, str) else version
    for bounds in parse_pragma(expression):
        if all(v >= b if op == ">=" else v < b for op, b in bounds):
            return True
    return False


def read_pragmas(source: str) -> List[str]:
    """Extract every ``pragma solidity`` expression from Solidity source text."""
    return [m.group(1).strip() for m in _PRAGMA.finditer(_COMMENTS.sub("", source))]


def remove_console_log(source: str) -> str:
    """
    Strip hardhat console imports and console.log(...) statements.

    Calls are removed up to their balanced closing parenthesis and the
    following semicolon, so multi-line calls are handled.
    """
    source = _CONSOLE_IMPORT.sub("", source)
    out: List[str] = []
    pos = 0
    for match in _CONSOLE_CALL.finditer(source):
        if match.start() < pos:
            continue
        depth = 0
        end = match.end() - 1
        while end < len(source):
            ch = source[end]
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    break
            end += 1
        end += 1
        while end < len(source) and source[end] in " \t":
            end += 1
        if end < len(source) and source[end] == ";":
            end += 1
        out.append(source[pos:match.start()])
        pos = end
    out.append(source[pos:])
    return "".join(out)


def load_compiler_profiles(config: Optional[Iterable[Mapping[str, Any]]] = None) -> List[CompilerProfile]:
    """Build CompilerProfiles from the ordered compiler configuration list."""
    return [CompilerProfile.from_dict(dict(c)) for c in (COMPILERS if config is None else config)]


class CompilerSelector:
    """Picks the compiler profile for each source file."""

    def __init__(
        self,
        profiles: Optional[Iterable[CompilerProfile]] = None,
        overrides: Optional[Mapping[str, CompilerProfile]] = None,
        sources_root: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize the selector.

        Args:
            profiles: Available compiler profiles (defaults to COMPILERS)
            overrides: Per-file profiles that bypass pragma matching
            sources_root: Directory relative source paths are read from
        """
        self.profiles = list(profiles) if profiles is not None else load_compiler_profiles()
        if not self.profiles:
            raise ConfigurationError("At least one compiler profile is required")
        for profile in self.profiles:
            parse_version(profile.version)
        self.overrides = dict(overrides or {})
        self.sources_root = Path(sources_root) if sources_root is not None else None

    def _read_declared(self, source_file: str) -> str:
        path = Path(source_file)
        if self.sources_root is not None and not path.is_absolute():
            path = self.sources_root / path
        try:
            pragmas = read_pragmas(path.read_text())
        except FileNotFoundError as e:
            raise ConfigurationError(f"Source file not found: {path}") from e
        if not pragmas:
            raise NoCompatibleCompilerError(f"No 'pragma solidity' found in {source_file}")
        # Several pragmas in one file must all hold
        return " ".join(pragmas) if all("||" not in p for p in pragmas) else pragmas[0]

    def select_profile(self, source_file: str, declared_version: Optional[str] = None) -> CompilerProfile:
        """
        Select the newest configured compiler compatible with a source file.

        Args:
            source_file: Source path (used for overrides and to read the pragma)
            declared_version: Pragma expression; read from the file when None

        Returns:
            The matching CompilerProfile, with its own optimizer settings

        Raises:
            NoCompatibleCompilerError: If no configured version satisfies the pragma
        """
        if source_file in self.overrides:
            return self.overrides[source_file]

        if declared_version is None:
            declared_version = self._read_declared(source_file)

        compatible = [p for p in self.profiles if satisfies(p.version, declared_version)]
        if not compatible:
            available = ", ".join(p.version for p in self.profiles)
            raise NoCompatibleCompilerError(
                f"No configured compiler satisfies '{declared_version}' for {source_file} "
                f"(available: {available})"
            )
        return max(compatible, key=lambda p: parse_version(p.version))


def collect_sources(
    entry: str,
    root: Union[str, Path],
    strip_console_log: bool = False,
) -> Dict[str, Dict[str, str]]:
    """
    Gather an entry file and everything it imports as standard-JSON sources.

    Source keys follow solc's import naming: relative imports are joined to
    the importing file's key, other imports are used as written. Files are
    looked up under ``root`` and then ``root/node_modules``.

    Returns:
        Dictionary mapping source key -> {"content": text}
    """
    root = Path(root)
    sources: Dict[str, Dict[str, str]] = {}
    pending = [posixpath.normpath(entry)]

    while pending:
        key = pending.pop()
        if key in sources:
            continue
        for candidate in (root / key, root / "node_modules" / key):
            if candidate.is_file():
                text = candidate.read_text()
                break
        else:
            raise ConfigurationError(f"Cannot resolve Solidity source '{key}' under {root}")

        if strip_console_log:
            text = remove_console_log(text)
        sources[key] = {"content": text}

        for imported in _IMPORT.findall(_COMMENTS.sub("", text)):
            if imported.startswith("."):
                imported = posixpath.normpath(posixpath.join(posixpath.dirname(key), imported))
            if imported not in sources:
                pending.append(imported)

    return sources


def standard_json_input(sources: Dict[str, Dict[str, str]], profile: CompilerProfile) -> Dict[str, Any]:
    """Build the solc standard-JSON input for a profile."""
    return {
        "language": "Solidity",
        "sources": sources,
        "settings": {
            **profile.settings(),
            "outputSelection": {
                "*": {
                    "*": ["abi", "evm.bytecode.object", "evm.deployedBytecode.object", "metadata"],
                },
            },
        },
    }


class Compiler(Protocol):
    """Turns a contract of a source file into deployable output."""

    def compile(
        self, source: str, contract: str, profile: CompilerProfile, strip_console_log: bool = False
    ) -> CompiledContract: ...


class SolcxCompiler:
    """Compiles contracts with py-solc-x, installing solc versions on demand."""

    def __init__(self, sources_root: Union[str, Path] = "contracts"):
        self.sources_root = Path(sources_root)
        self._cache: Dict[Tuple[str, CompilerProfile, bool], Dict[str, Any]] = {}

    def _ensure_installed(self, version: str) -> None:
        installed = {str(v) for v in solcx.get_installed_solc_versions()}
        if version not in installed:
            logger.info("Installing solc %s", version)
            try:
                solcx.install_solc(version)
            except (SolcInstallationError, OSError) as e:
                raise CompilationError(f"Could not install solc {version}: {e}") from e

    def _compile_standard(self, source: str, profile: CompilerProfile, strip_console_log: bool) -> Dict[str, Any]:
        cache_key = (source, profile, strip_console_log)
        if cache_key not in self._cache:
            sources = collect_sources(source, self.sources_root, strip_console_log)
            input_json = standard_json_input(sources, profile)
            self._ensure_installed(profile.version)
            logger.info("Compiling %s with solc %s (%d sources)", source, profile.version, len(sources))
            try:
                output = solcx.compile_standard(
                    input_json,
                    solc_version=profile.version,
                    allow_paths=str(self.sources_root.absolute()),
                )
            except SolcError as e:
                raise CompilationError(f"solc {profile.version} failed on {source}: {e}") from e
            self._cache[cache_key] = {"input": input_json, "output": output}
        return self._cache[cache_key]

    def compile(
        self,
        source: str,
        contract: str,
        profile: CompilerProfile,
        strip_console_log: bool = False,
    ) -> CompiledContract:
        """
        Compile one contract.

        Args:
            source: Source key of the file declaring the contract
            contract: Contract name inside the file
            profile: Compiler profile chosen by the selector
            strip_console_log: Remove console.log calls first

        Returns:
            CompiledContract with ABI, bytecode and the compiler long version

        Raises:
            ConfigurationError: If the contract is not in the compiler output
        """
        result = self._compile_standard(posixpath.normpath(source), profile, strip_console_log)
        contracts = result["output"].get("contracts", {})
        key = posixpath.normpath(source)
        if key not in contracts or contract not in contracts[key]:
            raise ConfigurationError(f"Contract '{contract}' not found in {source}")

        data = contracts[key][contract]
        long_version = None
        if data.get("metadata"):
            long_version = json.loads(data["metadata"]).get("compiler", {}).get("version")

        return CompiledContract(
            abi=data["abi"],
            bytecode="0x" + data["evm"]["bytecode"]["object"],
            deployed_bytecode="0x" + data["evm"]["deployedBytecode"]["object"],
            long_version=long_version,
            standard_json=result["input"],
        )
