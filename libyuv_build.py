"""libyuv native library resolution and ctypes bindings generator.

Locates a usable libyuv build for the active target, prints linker
directives for the build orchestrator, and generates a ctypes binding
surface restricted to the libyuv symbols the AVIF decoder consumes.

Usage:
    CARGO_FEATURE_LIBYUV=1 TARGET=x86_64-unknown-linux-gnu OUT_DIR=out \\
        python libyuv_build.py
    python libyuv_build.py --list-allowlist
"""

import argparse
import os
import shlex
import subprocess
import sys
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from clang.cindex import (
    Cursor,
    CursorKind,
    Diagnostic,
    Index,
    LibclangError,
    TranslationUnit,
    TranslationUnitLoadError,
    Type,
    TypeKind,
)

PROJECT_ROOT = Path(__file__).resolve().parent
LIBRARY_NAME = "yuv"
LIBRARY_DIR_NAME = "libyuv"
STATIC_LIBRARY_FILE = "libyuv.a"
PKG_CONFIG_NAME = "yuv"
HEADER_FILE = "wrapper.h"
OUTPUT_FILE = "libyuv_bindgen.py"

ENV_TARGET = "TARGET"
ENV_OUT_DIR = "OUT_DIR"
ENV_FEATURE = "CARGO_FEATURE_LIBYUV"
ENV_PROJECT_ROOT = "CARGO_MANIFEST_DIR"
ENV_EXTRA_CLANG_ARGS = "BINDGEN_EXTRA_CLANG_ARGS"
_FEATURE_OFF_VALUES = {"", "0", "false", "no", "off"}


# ===--- Errors ---=== #


VALID_ERROR_CODES = {
    "MISSING_ENV",
    "INVALID_ENV",
    "UNSUPPORTED_ARCH",
    "ARTIFACT_UNRESOLVED",
    "GENERATION_FAILED",
    "WRITE_FAILED",
}

UNRESOLVED_MESSAGE = (
    "libyuv binaries could not be found locally or with pkg-config. "
    "Disable the libyuv feature, install the system library libyuv-dev, "
    "or build libyuv locally so that {library} exists (see README.md)."
)


def unresolved_message(library: Path | str) -> str:
    return UNRESOLVED_MESSAGE.format(library=library)


class BuildError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown build error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def report_error(err: BuildError) -> None:
    print(f"error [{err.code}]: {err.message}", file=sys.stderr)
    if err.suggestion:
        print(f"Hint: {err.suggestion}", file=sys.stderr)


def diagnostic(message: str) -> None:
    print(f"  {message}", file=sys.stderr)


# ===--- Configuration ---=== #


@dataclass(frozen=True)
class BuildConfig:
    """Inputs of one build invocation, read once from flags and environment.

    Attributes:
        target: Target triple, e.g. "aarch64-linux-android".
        out_dir: Directory receiving the generated bindings module.
        project_root: Directory holding wrapper.h and the vendored libyuv tree.
        clang_args: Extra libclang arguments from BINDGEN_EXTRA_CLANG_ARGS,
            appended after the include arguments.
    """

    target: str
    out_dir: Path
    project_root: Path = PROJECT_ROOT
    clang_args: tuple[str, ...] = ()

    @property
    def is_windows(self) -> bool:
        return "windows" in self.target

    @property
    def library_root(self) -> Path:
        return self.project_root / LIBRARY_DIR_NAME

    @property
    def header_path(self) -> Path:
        return self.project_root / HEADER_FILE

    @property
    def output_path(self) -> Path:
        return self.out_dir / OUTPUT_FILE


@dataclass(frozen=True)
class DiscoveryConfig:
    command: str


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resolve libyuv and generate its ctypes bindings"
    )
    parser.add_argument("--target", type=str, default=None)
    parser.add_argument("--out-dir", type=Path, default=None)
    parser.add_argument("--project-root", type=Path, default=None)
    parser.add_argument("--enable", action="store_true", default=False)
    parser.add_argument("--list-allowlist", action="store_true", default=False)
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_argument_parser().parse_args(argv)


def feature_enabled(environ: Mapping[str, str]) -> bool:
    raw = environ.get(ENV_FEATURE)
    if raw is None:
        return False
    return raw.strip().lower() not in _FEATURE_OFF_VALUES


def validate_config(
    args: argparse.Namespace, environ: Mapping[str, str]
) -> BuildConfig | DiscoveryConfig | None:
    """Combine parsed flags with the environment into one config value.

    Returns None when the libyuv feature is disabled; the caller then exits
    successfully without touching anything.
    """
    if args.list_allowlist:
        return DiscoveryConfig(command="list-allowlist")

    if not (args.enable or feature_enabled(environ)):
        return None

    target = args.target or environ.get(ENV_TARGET)
    if not target:
        raise BuildError(
            "MISSING_ENV",
            f"No build target: {ENV_TARGET} is not set.",
            f"Export {ENV_TARGET}=<triple> or pass --target <triple>.",
        )

    out_dir = args.out_dir
    if out_dir is None and environ.get(ENV_OUT_DIR):
        out_dir = Path(environ[ENV_OUT_DIR])
    if out_dir is None:
        raise BuildError(
            "MISSING_ENV",
            f"No output directory: {ENV_OUT_DIR} is not set.",
            f"Export {ENV_OUT_DIR}=<dir> or pass --out-dir <dir>.",
        )

    project_root = args.project_root
    if project_root is None:
        project_root = Path(environ.get(ENV_PROJECT_ROOT) or PROJECT_ROOT)

    try:
        clang_args = tuple(shlex.split(environ.get(ENV_EXTRA_CLANG_ARGS, "")))
    except ValueError as err:
        raise BuildError(
            "INVALID_ENV",
            f"Cannot split {ENV_EXTRA_CLANG_ARGS}: {err}.",
            "Quote each libclang argument the way a POSIX shell would.",
        ) from err

    return BuildConfig(
        target=target,
        out_dir=out_dir,
        project_root=project_root,
        clang_args=clang_args,
    )


def build_config(
    argv: list[str] | None = None, environ: Mapping[str, str] | None = None
) -> BuildConfig | DiscoveryConfig | None:
    return validate_config(parse_args(argv), os.environ if environ is None else environ)


# ===--- Target resolution ---=== #

GENERIC_BUILD_DIR = "build"

# x86_64 must be checked before x86: the latter is a substring of the former.
ANDROID_BUILD_DIRS: tuple[tuple[str, str], ...] = (
    ("x86_64", "build.android/x86_64"),
    ("x86", "build.android/x86"),
    ("aarch64", "build.android/arm64-v8a"),
    ("arm", "build.android/armeabi-v7a"),
)


def resolve_build_dir(target: str) -> str:
    """Map a target triple to the prebuilt libyuv directory, relative to libyuv/."""
    if "android" not in target:
        return GENERIC_BUILD_DIR
    for arch, build_dir in ANDROID_BUILD_DIRS:
        if arch in target:
            return build_dir
    raise BuildError(
        "UNSUPPORTED_ARCH",
        f"Unknown target_arch for android target {target!r}.",
        "Must be one of x86, x86_64, arm, aarch64.",
    )


# ===--- Artifact location ---=== #


@dataclass(frozen=True)
class LocalStaticLibrary:
    path: Path
    library_root: Path

    @property
    def library_dir(self) -> Path:
        return self.path.parent


@dataclass(frozen=True)
class SystemPackage:
    libs: tuple[str, ...]
    link_paths: tuple[str, ...]
    include_paths: tuple[str, ...]


@dataclass(frozen=True)
class Unresolved:
    library_name: str = LIBRARY_NAME


ArtifactLocation = LocalStaticLibrary | SystemPackage | Unresolved


@dataclass(frozen=True)
class Resolution:
    """Selected artifact source plus the reason kept for a later failure.

    deferred_error is set only for Unresolved. It is surfaced in place of the
    raw parser error if binding generation fails, and printed as a diagnostic
    if generation succeeds anyway.
    """

    location: ArtifactLocation
    build_dir: str
    deferred_error: str | None = None


def parse_pkg_config_flags(output: str) -> SystemPackage:
    libs: list[str] = []
    link_paths: list[str] = []
    include_paths: list[str] = []
    for token in shlex.split(output):
        if token.startswith("-l"):
            libs.append(token[2:])
        elif token.startswith("-L"):
            link_paths.append(token[2:])
        elif token.startswith("-I"):
            include_paths.append(token[2:])
    return SystemPackage(
        libs=tuple(libs),
        link_paths=tuple(link_paths),
        include_paths=tuple(include_paths),
    )


def probe_pkg_config(name: str) -> SystemPackage | None:
    """Ask pkg-config for an installed library; None when it is not available."""
    try:
        result = subprocess.run(
            ["pkg-config", "--libs", "--cflags", name],
            capture_output=True,
            text=True,
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    return parse_pkg_config_flags(result.stdout)


def locate_artifact(
    config: BuildConfig,
    build_dir: str,
    probe: Callable[[str], SystemPackage | None] = probe_pkg_config,
) -> Resolution:
    library_file = config.library_root / build_dir / STATIC_LIBRARY_FILE
    exists = library_file.exists()
    diagnostic(f"Library dir: {config.library_root}")
    diagnostic(f"Local library {library_file} exists: {exists}")
    if exists:
        return Resolution(
            LocalStaticLibrary(path=library_file, library_root=config.library_root),
            build_dir,
        )

    package = probe(PKG_CONFIG_NAME)
    if package is not None:
        return Resolution(package, build_dir)

    return Resolution(
        Unresolved(), build_dir, deferred_error=unresolved_message(library_file)
    )


# ===--- Link directives ---=== #

DIRECTIVE_PREFIX = "cargo:"
WINDOWS_RUNTIME_LIBS: tuple[str, ...] = ("msvcrt", "mingw32", "gcc")


class LinkDirective(NamedTuple):
    key: str
    value: str

    def __str__(self) -> str:
        return f"{DIRECTIVE_PREFIX}{self.key}={self.value}"


def emit_link_directives(
    location: ArtifactLocation, *, windows: bool = False
) -> tuple[LinkDirective, ...]:
    if isinstance(location, LocalStaticLibrary):
        directives = [
            LinkDirective("rustc-link-lib", f"static={LIBRARY_NAME}"),
            LinkDirective("rustc-link-search", str(location.library_dir)),
        ]
        # The static archive is built with a MinGW toolchain.
        if windows:
            directives.extend(
                LinkDirective("rustc-link-lib", f"dylib={lib}")
                for lib in WINDOWS_RUNTIME_LIBS
            )
        return tuple(directives)
    if isinstance(location, SystemPackage):
        return tuple(
            [LinkDirective("rustc-link-lib", lib) for lib in location.libs]
            + [LinkDirective("rustc-link-search", path) for path in location.link_paths]
        )
    if isinstance(location, Unresolved):
        return (LinkDirective("rustc-link-lib", location.library_name),)
    raise TypeError(f"Unknown artifact location: {location!r}")


def rerun_directives(config: BuildConfig) -> tuple[LinkDirective, ...]:
    return (
        LinkDirective("rerun-if-changed", str(Path(__file__).resolve())),
        LinkDirective("rerun-if-changed", str(config.header_path)),
        LinkDirective("rerun-if-env-changed", ENV_TARGET),
        LinkDirective("rerun-if-env-changed", ENV_EXTRA_CLANG_ARGS),
    )


def print_directives(directives: Sequence[LinkDirective]) -> None:
    for directive in directives:
        print(directive)


# ===--- Include paths ---=== #


def _posix(path: str | Path) -> str:
    return str(path).replace("\\", "/")


def compose_include_dirs(location: ArtifactLocation) -> tuple[str, ...]:
    """Header search directories for the resolved artifact, in search order.

    A local build exposes both libyuv/ and libyuv/include so that
    "libyuv.h" and "libyuv/basic_types.h" both resolve.
    """
    if isinstance(location, LocalStaticLibrary):
        root = _posix(location.library_root)
        return (root, f"{root}/include")
    if isinstance(location, SystemPackage):
        return location.include_paths
    if isinstance(location, Unresolved):
        return ()
    raise TypeError(f"Unknown artifact location: {location!r}")


def include_args(include_dirs: Sequence[str]) -> list[str]:
    return [f"-I{path}" for path in include_dirs]


def format_include_flags(include_dirs: Sequence[str]) -> str:
    return " ".join(include_args(include_dirs))


# The libclang wheel ships no resource headers, so <stddef.h> and friends
# come from an installed compiler.
BUILTIN_INCLUDE_QUERIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("clang", "-print-resource-dir"), "include"),
    (("cc", "-print-file-name=include"), ""),
)


def find_builtin_include_dir() -> str | None:
    """Directory holding the compiler's stddef.h, or None when no compiler answers."""
    for command, suffix in BUILTIN_INCLUDE_QUERIES:
        try:
            result = subprocess.run(list(command), capture_output=True, text=True)
        except OSError:
            continue
        output = result.stdout.strip()
        if result.returncode != 0 or not output:
            continue
        candidate = Path(output) / suffix if suffix else Path(output)
        if (candidate / "stddef.h").is_file():
            return _posix(candidate)
    return None


def builtin_include_args(include_dir: str | None) -> list[str]:
    if include_dir is None:
        return []
    return ["-isystem", include_dir]


# ===--- Allow-list ---=== #

ALLOWLIST: tuple[str, ...] = (
    "ABGRToI420",
    "ABGRToJ400",
    "ABGRToJ420",
    "ABGRToJ422",
    "AR30ToAB30",
    "ARGBAttenuate",
    "ARGBToABGR",
    "ARGBToI400",
    "ARGBToI420",
    "ARGBToI422",
    "ARGBToI444",
    "ARGBToJ400",
    "ARGBToJ420",
    "ARGBToJ422",
    "ARGBUnattenuate",
    "BGRAToI420",
    "Convert16To8Plane",
    "FilterMode",
    "FilterMode_kFilterBilinear",
    "FilterMode_kFilterBox",
    "FilterMode_kFilterNone",
    "HalfFloatPlane",
    "I010AlphaToARGBMatrix",
    "I010AlphaToARGBMatrixFilter",
    "I010ToAR30Matrix",
    "I010ToARGBMatrix",
    "I010ToARGBMatrixFilter",
    "I012ToARGBMatrix",
    "I210AlphaToARGBMatrix",
    "I210AlphaToARGBMatrixFilter",
    "I210ToARGBMatrix",
    "I210ToARGBMatrixFilter",
    "I400ToARGBMatrix",
    "I410AlphaToARGBMatrix",
    "I410ToARGBMatrix",
    "I420AlphaToARGBMatrix",
    "I420AlphaToARGBMatrixFilter",
    "I420ToARGBMatrix",
    "I420ToARGBMatrixFilter",
    "I420ToRGB24Matrix",
    "I420ToRGB24MatrixFilter",
    "I420ToRGB565Matrix",
    "I420ToRGBAMatrix",
    "I422AlphaToARGBMatrix",
    "I422AlphaToARGBMatrixFilter",
    "I422ToARGBMatrix",
    "I422ToARGBMatrixFilter",
    "I422ToRGB24MatrixFilter",
    "I422ToRGB565Matrix",
    "I422ToRGBAMatrix",
    "I444AlphaToARGBMatrix",
    "I444ToARGBMatrix",
    "I444ToRGB24Matrix",
    "LIBYUV_VERSION",
    "NV12Scale",
    "NV12ToARGBMatrix",
    "NV12ToRGB565Matrix",
    "NV21ToARGBMatrix",
    "NV21ToNV12",
    "P010ToAR30Matrix",
    "P010ToARGBMatrix",
    "P010ToI010",
    "RAWToI420",
    "RAWToJ400",
    "RAWToJ420",
    "RGB24ToI420",
    "RGB24ToJ400",
    "RGB24ToJ420",
    "RGBAToI420",
    "RGBAToJ400",
    "ScalePlane",
    "ScalePlane_12",
    "YuvConstants",
    "kYuv2020Constants",
    "kYuvF709Constants",
    "kYuvH709Constants",
    "kYuvI601Constants",
    "kYuvJPEGConstants",
    "kYuvV2020Constants",
    "kYvu2020Constants",
    "kYvuF709Constants",
    "kYvuH709Constants",
    "kYvuI601Constants",
    "kYvuJPEGConstants",
    "kYvuV2020Constants",
)
"""Every libyuv symbol the generated bindings expose, and nothing else.

Enum constants use the "<EnumTag>_<constant>" form. Tied to the vendored
libyuv header revision; a renamed symbol fails generation."""


# ===--- Header declarations ---=== #


@dataclass(frozen=True)
class FunctionDecl:
    name: str
    restype: str
    argtypes: tuple[str, ...]


@dataclass(frozen=True)
class EnumDecl:
    """A C enum; constants carry their "<tag>_<name>" binding names."""

    name: str
    ctype: str
    constants: tuple[tuple[str, int], ...]


@dataclass(frozen=True)
class StructDecl:
    name: str
    fields: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class VariableDecl:
    name: str
    ctype: str


@dataclass(frozen=True)
class MacroDecl:
    name: str
    value: int | str


@dataclass(frozen=True)
class HeaderDecls:
    """Declarations extracted from the parsed header.

    symbol_names holds every top-level name seen, modeled or not. Only names
    requested from the parser are modeled into the typed tuples.
    """

    symbol_names: frozenset[str] = frozenset()
    functions: tuple[FunctionDecl, ...] = ()
    enums: tuple[EnumDecl, ...] = ()
    structs: tuple[StructDecl, ...] = ()
    variables: tuple[VariableDecl, ...] = ()
    macros: tuple[MacroDecl, ...] = ()


# ===--- ctypes type mapping ---=== #

TYPEDEF_CTYPES = {
    "int8_t": "ctypes.c_int8",
    "int16_t": "ctypes.c_int16",
    "int32_t": "ctypes.c_int32",
    "int64_t": "ctypes.c_int64",
    "uint8_t": "ctypes.c_uint8",
    "uint16_t": "ctypes.c_uint16",
    "uint32_t": "ctypes.c_uint32",
    "uint64_t": "ctypes.c_uint64",
    "size_t": "ctypes.c_size_t",
    "ssize_t": "ctypes.c_ssize_t",
    "ptrdiff_t": "ctypes.c_ssize_t",
    "intptr_t": "ctypes.c_ssize_t",
    "uintptr_t": "ctypes.c_size_t",
}

BUILTIN_CTYPES = {
    TypeKind.VOID: "None",
    TypeKind.BOOL: "ctypes.c_bool",
    TypeKind.CHAR_S: "ctypes.c_char",
    TypeKind.CHAR_U: "ctypes.c_char",
    TypeKind.SCHAR: "ctypes.c_byte",
    TypeKind.UCHAR: "ctypes.c_ubyte",
    TypeKind.SHORT: "ctypes.c_short",
    TypeKind.USHORT: "ctypes.c_ushort",
    TypeKind.INT: "ctypes.c_int",
    TypeKind.UINT: "ctypes.c_uint",
    TypeKind.LONG: "ctypes.c_long",
    TypeKind.ULONG: "ctypes.c_ulong",
    TypeKind.LONGLONG: "ctypes.c_longlong",
    TypeKind.ULONGLONG: "ctypes.c_ulonglong",
    TypeKind.FLOAT: "ctypes.c_float",
    TypeKind.DOUBLE: "ctypes.c_double",
    TypeKind.LONGDOUBLE: "ctypes.c_longdouble",
}

_FUNCTION_KINDS = (TypeKind.FUNCTIONPROTO, TypeKind.FUNCTIONNOPROTO)
_CHAR_KINDS = (TypeKind.CHAR_S, TypeKind.CHAR_U)


def ctype_expr(ctype: Type, allowed: frozenset[str]) -> str:
    """Render a clang type as a ctypes expression usable in generated source.

    Allowed records and enums are referenced by their generated names; an enum
    outside the allow-list degrades to its integer type.
    """
    kind = ctype.kind
    if kind == TypeKind.ELABORATED:
        return ctype_expr(ctype.get_named_type(), allowed)
    if kind == TypeKind.TYPEDEF:
        name = ctype.get_declaration().spelling
        if name in TYPEDEF_CTYPES:
            return TYPEDEF_CTYPES[name]
        return ctype_expr(ctype.get_canonical(), allowed)
    if kind == TypeKind.POINTER:
        return _pointer_expr(ctype.get_pointee(), allowed)
    if kind == TypeKind.CONSTANTARRAY:
        return f"{ctype_expr(ctype.element_type, allowed)} * {ctype.element_count}"
    if kind == TypeKind.INCOMPLETEARRAY:
        return _pointer_expr(ctype.element_type, allowed)
    if kind == TypeKind.RECORD:
        name = ctype.get_declaration().spelling
        if name in allowed:
            return name
    elif kind == TypeKind.ENUM:
        decl = ctype.get_declaration()
        if decl.spelling in allowed:
            return decl.spelling
        return ctype_expr(decl.enum_type, allowed)
    elif kind in BUILTIN_CTYPES:
        return BUILTIN_CTYPES[kind]
    raise BuildError(
        "GENERATION_FAILED",
        f"Cannot model C type {ctype.spelling!r} in the ctypes bindings.",
        "Add the type to the allow-list or keep it behind a pointer.",
    )


def _pointer_expr(pointee: Type, allowed: frozenset[str]) -> str:
    canonical = pointee.get_canonical()
    if canonical.kind == TypeKind.VOID or canonical.kind in _FUNCTION_KINDS:
        return "ctypes.c_void_p"
    if canonical.kind in _CHAR_KINDS:
        return "ctypes.c_char_p"
    if (
        canonical.kind == TypeKind.RECORD
        and canonical.get_declaration().spelling not in allowed
    ):
        return "ctypes.c_void_p"
    return f"ctypes.POINTER({ctype_expr(pointee, allowed)})"


# ===--- Header parsing ---=== #

PARSE_OPTIONS = (
    TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD
    | TranslationUnit.PARSE_SKIP_FUNCTION_BODIES
)
_CONTAINER_KINDS = (
    CursorKind.LINKAGE_SPEC,
    CursorKind.NAMESPACE,
    CursorKind.UNEXPOSED_DECL,
)
_INT_SUFFIXES = "uUlL"


def _parse_c_int(s: str) -> int:
    s = s.strip().rstrip(_INT_SUFFIXES)
    negative = s.startswith("-")
    if negative:
        s = s[1:]
    if s.startswith(("0x", "0X")):
        value = int(s, 16)
    elif len(s) > 1 and s.startswith("0"):
        value = int(s, 8)
    else:
        value = int(s)
    return -value if negative else value


def _iter_top_level(cursor: Cursor) -> Iterator[Cursor]:
    for child in cursor.get_children():
        if child.kind in _CONTAINER_KINDS:
            yield from _iter_top_level(child)
        else:
            yield child


def _macro_value(cursor: Cursor) -> int | str | None:
    tokens = [token.spelling for token in cursor.get_tokens()][1:]
    if tokens[:1] == ["("] and tokens[-1:] == [")"]:
        tokens = tokens[1:-1]
    text = "".join(tokens)
    if not text:
        return None
    if text.startswith('"') and text.endswith('"'):
        return text[1:-1]
    try:
        return _parse_c_int(text)
    except ValueError:
        return None


def extract_declarations(root: Cursor, allowed: frozenset[str]) -> HeaderDecls:
    """Walk a translation unit and model the declarations named in allowed."""
    names: set[str] = set()
    functions: dict[str, FunctionDecl] = {}
    enums: dict[str, EnumDecl] = {}
    structs: dict[str, StructDecl] = {}
    variables: dict[str, VariableDecl] = {}
    macros: dict[str, MacroDecl] = {}

    for cursor in _iter_top_level(root):
        kind = cursor.kind
        name = cursor.spelling
        if kind == CursorKind.MACRO_DEFINITION:
            if cursor.location.file is None:
                continue
            names.add(name)
            if name in allowed and name not in macros:
                value = _macro_value(cursor)
                if value is not None:
                    macros[name] = MacroDecl(name, value)
        elif kind == CursorKind.FUNCTION_DECL:
            names.add(name)
            if name in allowed and name not in functions:
                functions[name] = FunctionDecl(
                    name=name,
                    restype=ctype_expr(cursor.result_type, allowed),
                    argtypes=tuple(
                        ctype_expr(arg.type, allowed) for arg in cursor.get_arguments()
                    ),
                )
        elif kind == CursorKind.ENUM_DECL and name.isidentifier():
            constants = tuple(
                (f"{name}_{child.spelling}", child.enum_value)
                for child in cursor.get_children()
                if child.kind == CursorKind.ENUM_CONSTANT_DECL
            )
            if not constants:
                continue
            names.add(name)
            names.update(qualified for qualified, _ in constants)
            wanted = name in allowed or any(q in allowed for q, _ in constants)
            if wanted and name not in enums:
                enums[name] = EnumDecl(
                    name=name,
                    ctype=ctype_expr(cursor.enum_type, allowed),
                    constants=constants,
                )
        elif kind == CursorKind.STRUCT_DECL and name.isidentifier():
            names.add(name)
            if name not in allowed:
                continue
            if cursor.is_definition():
                structs[name] = StructDecl(
                    name=name,
                    fields=tuple(
                        (child.spelling, ctype_expr(child.type, allowed))
                        for child in cursor.get_children()
                        if child.kind == CursorKind.FIELD_DECL
                    ),
                )
            else:
                structs.setdefault(name, StructDecl(name=name, fields=()))
        elif kind == CursorKind.VAR_DECL:
            names.add(name)
            if name in allowed and name not in variables:
                variables[name] = VariableDecl(name, ctype_expr(cursor.type, allowed))

    return HeaderDecls(
        symbol_names=frozenset(names),
        functions=tuple(functions.values()),
        enums=tuple(enums.values()),
        structs=tuple(structs.values()),
        variables=tuple(variables.values()),
        macros=tuple(macros.values()),
    )


def _format_diagnostic(diag: Diagnostic) -> str:
    location = diag.location
    if location.file is None:
        return diag.spelling
    return f"{location.file}:{location.line}: {diag.spelling}"


def parse_header(
    header: Path,
    include_dirs: Sequence[str],
    allowlist: Sequence[str],
    clang_args: Sequence[str] = (),
) -> HeaderDecls:
    """Parse header with libclang, one -I argument per include directory.

    clang_args follow the include arguments, each passed as its own token;
    this is where -isystem for the compiler's builtin headers goes.
    """
    args = ["-x", "c", *include_args(include_dirs), *clang_args]
    try:
        index = Index.create()
        tu = index.parse(str(header), args=args, options=PARSE_OPTIONS)
    except (LibclangError, TranslationUnitLoadError) as err:
        raise BuildError(
            "GENERATION_FAILED", f"Unable to parse {header}: {err}"
        ) from err

    errors = [d for d in tu.diagnostics if d.severity >= Diagnostic.Error]
    if errors:
        raise BuildError(
            "GENERATION_FAILED",
            f"Unable to parse {header}: "
            + "; ".join(_format_diagnostic(d) for d in errors),
            "Check that the libyuv headers are reachable from the include paths.",
        )
    return extract_declarations(tu.cursor, frozenset(allowlist))


# ===--- Allow-list selection ---=== #


@dataclass(frozen=True)
class BindingSurface:
    """Allow-listed declarations in allow-list order, ready to render."""

    macros: tuple[MacroDecl, ...] = ()
    enum_types: tuple[EnumDecl, ...] = ()
    enum_constants: tuple[tuple[str, int], ...] = ()
    structs: tuple[StructDecl, ...] = ()
    functions: tuple[FunctionDecl, ...] = ()
    variables: tuple[VariableDecl, ...] = ()

    @property
    def names(self) -> tuple[str, ...]:
        return (
            tuple(m.name for m in self.macros)
            + tuple(e.name for e in self.enum_types)
            + tuple(name for name, _ in self.enum_constants)
            + tuple(s.name for s in self.structs)
            + tuple(f.name for f in self.functions)
            + tuple(v.name for v in self.variables)
        )


def select_surface(decls: HeaderDecls, allowlist: Sequence[str]) -> BindingSurface:
    """Restrict decls to exactly the allow-listed names.

    Raises:
        BuildError(GENERATION_FAILED): An allow-listed name is absent from the
            header, or present but not representable (e.g. a function-like macro).
    """
    order = {name: i for i, name in enumerate(allowlist)}

    def _ordered(items):
        return tuple(
            sorted((item for item in items if item.name in order), key=lambda d: order[d.name])
        )

    enum_constants = sorted(
        (
            constant
            for enum in decls.enums
            for constant in enum.constants
            if constant[0] in order
        ),
        key=lambda constant: order[constant[0]],
    )
    surface = BindingSurface(
        macros=_ordered(decls.macros),
        enum_types=_ordered(decls.enums),
        enum_constants=tuple(enum_constants),
        structs=_ordered(decls.structs),
        functions=_ordered(decls.functions),
        variables=_ordered(decls.variables),
    )

    modeled = set(surface.names)
    missing = [name for name in allowlist if name not in modeled]
    if missing:
        absent = [name for name in missing if name not in decls.symbol_names]
        detail = "missing from header" if absent else "not representable"
        raise BuildError(
            "GENERATION_FAILED",
            f"Allow-listed symbols {detail}: {', '.join(missing)}",
            "The vendored libyuv header revision does not match the allow-list.",
        )
    return surface


# ===--- Rendering ---=== #

_HEADER_BORDER: str = "# x-------------------------------------------x #"

_BIND_FUNCTION: tuple[str, ...] = (
    "def bind(lib):",
    '    """Attach prototypes to a loaded libyuv handle and return the symbols."""',
    "    symbols = {}",
    "    for name, (restype, argtypes) in FUNCTIONS.items():",
    "        function = getattr(lib, name)",
    "        function.restype = restype",
    "        function.argtypes = argtypes",
    "        symbols[name] = function",
    "    for name, ctype in VARIABLES.items():",
    "        symbols[name] = ctype.in_dll(lib, name)",
    "    return types.SimpleNamespace(**symbols)",
)


def format_file_header(header_name: str, surface: BindingSurface) -> list[str]:
    return [
        _HEADER_BORDER,
        "# | libyuv ctypes bindings",
        "# | Generated by libyuv-sys-build; do not edit",
        f"# | Header: {header_name}",
        f"# | Symbols: {len(surface.names)}",
        _HEADER_BORDER,
    ]


def _format_argtypes(argtypes: tuple[str, ...]) -> str:
    if len(argtypes) == 1:
        return f"({argtypes[0]},)"
    return f"({', '.join(argtypes)})"


def render_bindings(surface: BindingSurface, header_name: str = HEADER_FILE) -> str:
    """Render the binding surface as Python source.

    The output depends only on surface and header_name, so identical inputs
    produce byte-identical files.
    """
    lines = format_file_header(header_name, surface)
    lines += ["", "import ctypes", "import types", ""]

    if surface.macros:
        lines.append("")
        lines += [f"{m.name} = {m.value!r}" for m in surface.macros]

    if surface.enum_types or surface.enum_constants:
        lines.append("")
        lines += [f"{e.name} = {e.ctype}" for e in surface.enum_types]
        lines += [f"{name} = {value}" for name, value in surface.enum_constants]

    for struct in surface.structs:
        lines += ["", "", f"class {struct.name}(ctypes.Structure):", "    pass"]
    for struct in surface.structs:
        lines += ["", f"{struct.name}._fields_ = ["]
        lines += [f"    ({name!r}, {ctype})," for name, ctype in struct.fields]
        lines.append("]")

    lines += ["", "FUNCTIONS = {"]
    for fn in surface.functions:
        lines.append(f"    {fn.name!r}: ({fn.restype}, {_format_argtypes(fn.argtypes)}),")
    lines.append("}")

    lines += ["", "VARIABLES = {"]
    lines += [f"    {v.name!r}: {v.ctype}," for v in surface.variables]
    lines.append("}")

    lines += ["", ""]
    lines += list(_BIND_FUNCTION)
    return "\n".join(lines) + "\n"


# ===--- Generation ---=== #


def generate_bindings(
    header: Path,
    include_dirs: Sequence[str],
    allowlist: Sequence[str] = ALLOWLIST,
    *,
    clang_args: Sequence[str] = (),
    deferred_error: str | None = None,
) -> tuple[BindingSurface, str]:
    """Parse, filter and render.

    When a deferred reason is given, a generation failure is reported as
    ARTIFACT_UNRESOLVED carrying that reason, with the parser error chained.
    """
    try:
        decls = parse_header(header, include_dirs, allowlist, clang_args)
        surface = select_surface(decls, allowlist)
    except BuildError as err:
        if deferred_error is None or err.code != "GENERATION_FAILED":
            raise
        raise BuildError(
            "ARTIFACT_UNRESOLVED", deferred_error, f"Parser said: {err.message}"
        ) from err
    return surface, render_bindings(surface, header.name)


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing the generated bindings module.

    Attributes:
        filename: Filename written, e.g. "libyuv_bindgen.py".
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int


def write_bindings(path: Path, source: str) -> FileWriteResult:
    """Write source to path, replacing any previous contents."""
    path = Path(path)
    data = source.encode("utf-8")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as err:
        raise BuildError(
            "WRITE_FAILED", f"Unable to write bindings to {path}: {err}"
        ) from err
    return FileWriteResult(
        filename=path.name,
        path=path.resolve(),
        line_count=source.count("\n"),
        byte_count=len(data),
    )


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationSummary:
    target: str
    source_label: str
    macros: int
    enums: int
    enum_constants: int
    structs: int
    functions: int
    variables: int
    output: FileWriteResult


def build_generation_summary(
    config: BuildConfig, resolution: Resolution, surface: BindingSurface, result: FileWriteResult
) -> GenerationSummary:
    location = resolution.location
    if isinstance(location, LocalStaticLibrary):
        source_label = f"local {location.path}"
    elif isinstance(location, SystemPackage):
        source_label = f"pkg-config {PKG_CONFIG_NAME}"
    else:
        source_label = "unresolved (bare link)"
    return GenerationSummary(
        target=config.target,
        source_label=source_label,
        macros=len(surface.macros),
        enums=len(surface.enum_types),
        enum_constants=len(surface.enum_constants),
        structs=len(surface.structs),
        functions=len(surface.functions),
        variables=len(surface.variables),
        output=result,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    lines = [
        "libyuv bindings generated:",
        "",
        f"  Target:     {summary.target}",
        f"  Library:    {summary.source_label}",
        f"  Output:     {summary.output.path}",
        "",
        "  Declarations:",
        f"    {'Macros:':<16}{summary.macros:>4}",
        f"    {'Enums:':<16}{summary.enums:>4}",
        f"    {'Enum constants:':<16}{summary.enum_constants:>4}",
        f"    {'Structs:':<16}{summary.structs:>4}",
        f"    {'Functions:':<16}{summary.functions:>4}",
        f"    {'Variables:':<16}{summary.variables:>4}",
        "",
        f"  Total: {summary.output.line_count:,} lines, {summary.output.byte_count:,} bytes",
        "",
    ]
    return "\n".join(lines)


# ===--- Pipeline ---=== #


def run_build(
    config: BuildConfig,
    probe: Callable[[str], SystemPackage | None] = probe_pkg_config,
) -> FileWriteResult:
    """Resolve libyuv for config.target, print link directives, write bindings.

    Raises:
        BuildError: UNSUPPORTED_ARCH, ARTIFACT_UNRESOLVED, GENERATION_FAILED or
            WRITE_FAILED; every failure is fatal for the invocation.
    """
    build_dir = resolve_build_dir(config.target)
    resolution = locate_artifact(config, build_dir, probe)
    print_directives(emit_link_directives(resolution.location, windows=config.is_windows))

    include_dirs = compose_include_dirs(resolution.location)
    diagnostic(f"Include flags: {format_include_flags(include_dirs)}")
    diagnostic(f"Header: {config.header_path}")
    builtin_dir = find_builtin_include_dir()
    diagnostic(f"Builtin include dir: {builtin_dir or 'not found'}")

    surface, source = generate_bindings(
        config.header_path,
        include_dirs,
        ALLOWLIST,
        clang_args=[*builtin_include_args(builtin_dir), *config.clang_args],
        deferred_error=resolution.deferred_error,
    )
    if resolution.deferred_error is not None:
        diagnostic(f"Note: {resolution.deferred_error}")

    result = write_bindings(config.output_path, source)
    summary = build_generation_summary(config, resolution, surface, result)
    print(format_generation_summary(summary), end="", file=sys.stderr)
    return result


def run_discovery(config: DiscoveryConfig) -> None:
    if config.command == "list-allowlist":
        for name in ALLOWLIST:
            print(name)


# ===--- Main ---=== #


def main(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> None:
    try:
        config = build_config(argv, environ)
    except BuildError as err:
        report_error(err)
        raise SystemExit(1) from err

    if isinstance(config, DiscoveryConfig):
        run_discovery(config)
        return
    if config is None:
        # Feature disabled at the top level; nothing to build.
        return

    print_directives(rerun_directives(config))
    try:
        run_build(config)
    except BuildError as err:
        report_error(err)
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
