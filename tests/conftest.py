import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import libyuv_build  # noqa: E402
from clang.cindex import Index, LibclangError  # noqa: E402

FAKE_LIBYUV_HEADER = """\
#include <stddef.h>
#include <stdint.h>

#define LIBYUV_VERSION 1880

struct YuvConstants {
  uint8_t kUVCoeff[16];
  int16_t kRGBCoeffBias[8];
};

typedef enum FilterMode {
  kFilterNone = 0,
  kFilterLinear = 1,
  kFilterBilinear = 2,
  kFilterBox = 3
} FilterModeEnum;

extern const struct YuvConstants kYuvI601Constants;

int ARGBToI420(const uint8_t* src_argb, int src_stride_argb, uint8_t* dst_y,
               int dst_stride_y, int width, int height);
void ScalePlane(const uint8_t* src, int src_stride, int src_width,
                int src_height, uint8_t* dst, int dst_stride, int dst_width,
                int dst_height, enum FilterMode filtering);
int I420ToARGBMatrix(const uint8_t* src_y, int src_stride_y,
                     const struct YuvConstants* yuvconstants, int width);
int MJPGSize(const uint8_t* sample, size_t sample_size, int* width,
             int* height);
void NotAllowed(void);
"""

FAKE_ALLOWLIST: tuple[str, ...] = (
    "ARGBToI420",
    "FilterMode",
    "FilterMode_kFilterBox",
    "FilterMode_kFilterNone",
    "I420ToARGBMatrix",
    "LIBYUV_VERSION",
    "MJPGSize",
    "ScalePlane",
    "YuvConstants",
    "kYuvI601Constants",
)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    (root / "wrapper.h").write_text('#include "libyuv.h"\n', encoding="utf-8")
    return root


@pytest.fixture
def vendored_headers(project_root: Path) -> Path:
    include_dir = project_root / "libyuv" / "include"
    include_dir.mkdir(parents=True)
    (include_dir / "libyuv.h").write_text(FAKE_LIBYUV_HEADER, encoding="utf-8")
    return include_dir


@pytest.fixture
def make_static_library(project_root: Path) -> Callable[[str], Path]:
    def _make_static_library(build_dir: str) -> Path:
        library = project_root / "libyuv" / build_dir / "libyuv.a"
        library.parent.mkdir(parents=True, exist_ok=True)
        library.write_bytes(b"!<arch>\n")
        return library

    return _make_static_library


@pytest.fixture
def make_config(
    project_root: Path, tmp_path: Path
) -> Callable[..., libyuv_build.BuildConfig]:
    def _make_config(target: str = "x86_64-unknown-linux-gnu") -> libyuv_build.BuildConfig:
        return libyuv_build.BuildConfig(
            target=target, out_dir=tmp_path / "out", project_root=project_root
        )

    return _make_config


@pytest.fixture
def fake_pkg_config(
    monkeypatch: pytest.MonkeyPatch,
) -> Callable[..., list[list[str]]]:
    """Replace pkg-config with a canned answer; returns recorded calls.

    Other commands, such as the compiler include query, still run for real.
    """
    real_run = subprocess.run

    def _install(stdout: str = "", returncode: int = 0) -> list[list[str]]:
        calls: list[list[str]] = []

        def _run(cmd, **kwargs):
            if cmd[0] != "pkg-config":
                return real_run(cmd, **kwargs)
            calls.append(list(cmd))
            return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")

        monkeypatch.setattr(libyuv_build.subprocess, "run", _run)
        return calls

    return _install


@pytest.fixture(scope="session")
def libclang() -> None:
    try:
        Index.create()
    except LibclangError as err:
        pytest.skip(f"libclang shared library unavailable: {err}")


@pytest.fixture
def fake_allowlist() -> tuple[str, ...]:
    return FAKE_ALLOWLIST


@pytest.fixture
def fake_header_text() -> str:
    return FAKE_LIBYUV_HEADER


@pytest.fixture(scope="session")
def builtin_clang_args(libclang: None) -> list[str]:
    include_dir = libyuv_build.find_builtin_include_dir()
    if include_dir is None:
        pytest.skip("no clang or cc to provide stddef.h and stdint.h")
    return libyuv_build.builtin_include_args(include_dir)
