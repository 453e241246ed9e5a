from collections.abc import Callable
from pathlib import Path

import pytest

import libyuv_build


@pytest.fixture
def make_env(project_root: Path, tmp_path: Path) -> Callable[..., dict[str, str]]:
    def _make_env(target: str = "x86_64-unknown-linux-gnu") -> dict[str, str]:
        return {
            "CARGO_FEATURE_LIBYUV": "1",
            "TARGET": target,
            "OUT_DIR": str(tmp_path / "out"),
            "CARGO_MANIFEST_DIR": str(project_root),
        }

    return _make_env


def test_disabled_feature_exits_cleanly_without_output(
    capsys: pytest.CaptureFixture[str],
) -> None:
    libyuv_build.main([], {})

    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == ""


def test_list_allowlist_prints_every_symbol(capsys: pytest.CaptureFixture[str]) -> None:
    libyuv_build.main(["--list-allowlist"], {})

    assert capsys.readouterr().out.splitlines() == list(libyuv_build.ALLOWLIST)


def test_missing_target_exits_non_zero(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        libyuv_build.main([], {"CARGO_FEATURE_LIBYUV": "1", "OUT_DIR": "/tmp/out"})

    assert exc_info.value.code == 1
    err = capsys.readouterr().err
    assert "error [MISSING_ENV]" in err
    assert "Hint:" in err


def test_unknown_android_architecture_aborts(
    make_env: Callable[..., dict[str, str]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    with pytest.raises(SystemExit) as exc_info:
        libyuv_build.main([], make_env("mips-linux-android"))

    assert exc_info.value.code == 1
    assert "error [UNSUPPORTED_ARCH]" in capsys.readouterr().err


def test_scenario_a_no_artifact_reports_three_remedies(
    make_env: Callable[..., dict[str, str]],
    project_root: Path,
    fake_pkg_config: Callable[..., list[list[str]]],
    capsys: pytest.CaptureFixture[str],
    tmp_path: Path,
) -> None:
    fake_pkg_config(returncode=1)

    with pytest.raises(SystemExit) as exc_info:
        libyuv_build.main([], make_env())

    assert exc_info.value.code == 1
    captured = capsys.readouterr()
    assert "cargo:rustc-link-lib=yuv" in captured.out.splitlines()
    assert "error [ARTIFACT_UNRESOLVED]" in captured.err
    assert "Disable the libyuv feature" in captured.err
    assert "install the system library libyuv-dev" in captured.err
    expected_library = project_root / "libyuv" / "build" / "libyuv.a"
    assert f"build libyuv locally so that {expected_library} exists" in captured.err
    assert "Hint: Parser said:" in captured.err
    assert not (tmp_path / "out" / "libyuv_bindgen.py").exists()


def test_scenario_b_android_arm64_links_arch_dir(
    make_config: Callable[..., libyuv_build.BuildConfig],
    make_static_library: Callable[[str], Path],
    fake_pkg_config: Callable[..., list[list[str]]],
) -> None:
    library = make_static_library("build.android/arm64-v8a")
    fake_pkg_config("-lyuv")
    config = make_config("aarch64-linux-android")

    build_dir = libyuv_build.resolve_build_dir(config.target)
    resolution = libyuv_build.locate_artifact(config, build_dir)
    directives = libyuv_build.emit_link_directives(
        resolution.location, windows=config.is_windows
    )

    assert build_dir == "build.android/arm64-v8a"
    assert libyuv_build.LinkDirective("rustc-link-search", str(library.parent)) in directives
    assert len(directives) == 2


def test_scenario_c_windows_local_library_adds_runtime_links(
    make_config: Callable[..., libyuv_build.BuildConfig],
    make_static_library: Callable[[str], Path],
) -> None:
    make_static_library("build")
    config = make_config("x86_64-pc-windows-gnu")

    resolution = libyuv_build.locate_artifact(config, "build")
    lines = [
        str(d)
        for d in libyuv_build.emit_link_directives(
            resolution.location, windows=config.is_windows
        )
    ]

    assert lines[0] == "cargo:rustc-link-lib=static=yuv"
    assert lines[2:] == [
        "cargo:rustc-link-lib=dylib=msvcrt",
        "cargo:rustc-link-lib=dylib=mingw32",
        "cargo:rustc-link-lib=dylib=gcc",
    ]


def test_main_with_local_library_writes_bindings(
    builtin_clang_args: list[str],
    make_env: Callable[..., dict[str, str]],
    make_static_library: Callable[[str], Path],
    vendored_headers: Path,
    fake_allowlist: tuple[str, ...],
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    tmp_path: Path,
) -> None:
    monkeypatch.setattr(libyuv_build, "ALLOWLIST", fake_allowlist)
    library = make_static_library("build")

    libyuv_build.main([], make_env())

    captured = capsys.readouterr()
    out_lines = captured.out.splitlines()
    assert "cargo:rustc-link-lib=static=yuv" in out_lines
    assert f"cargo:rustc-link-search={library.parent}" in out_lines
    assert any(line.startswith("cargo:rerun-if-changed=") for line in out_lines)
    assert "libyuv bindings generated:" in captured.err
    assert "Include flags: -I" in captured.err
    assert "Builtin include dir: " in captured.err
    assert "Builtin include dir: not found" not in captured.err
    output = tmp_path / "out" / "libyuv_bindgen.py"
    source = output.read_text(encoding="utf-8")
    for name in fake_allowlist:
        assert name in source
    assert "NotAllowed" not in source


def test_unresolved_success_still_reports_deferred_reason(
    builtin_clang_args: list[str],
    make_config: Callable[..., libyuv_build.BuildConfig],
    project_root: Path,
    fake_allowlist: tuple[str, ...],
    fake_pkg_config: Callable[..., list[list[str]]],
    fake_header_text: str,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    (project_root / "libyuv.h").write_text(fake_header_text, encoding="utf-8")
    monkeypatch.setattr(libyuv_build, "ALLOWLIST", fake_allowlist)
    fake_pkg_config(returncode=1)
    config = make_config()

    result = libyuv_build.run_build(config)

    assert result.path == config.output_path.resolve()
    expected = libyuv_build.unresolved_message(
        project_root / "libyuv" / "build" / "libyuv.a"
    )
    assert f"Note: {expected}" in capsys.readouterr().err


def test_run_build_passes_builtin_and_extra_clang_args(
    make_static_library: Callable[[str], Path],
    project_root: Path,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    make_static_library("build")
    config = libyuv_build.BuildConfig(
        target="x86_64-unknown-linux-gnu",
        out_dir=tmp_path / "out",
        project_root=project_root,
        clang_args=("-DYUV_EXTRA=1",),
    )
    seen: list[list[str]] = []

    def _generate(header, include_dirs, allowlist, *, clang_args, deferred_error):
        seen.append(list(clang_args))
        raise libyuv_build.BuildError("GENERATION_FAILED", "stopped")

    monkeypatch.setattr(libyuv_build, "find_builtin_include_dir", lambda: "/opt/cc/include")
    monkeypatch.setattr(libyuv_build, "generate_bindings", _generate)

    with pytest.raises(libyuv_build.BuildError, match="stopped"):
        libyuv_build.run_build(config)

    assert seen == [["-isystem", "/opt/cc/include", "-DYUV_EXTRA=1"]]
