"""Tests for crossbuild.builders.golang (flag rendering, main detection, go build)."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from crossbuild.artifact import Artifact, ArtifactType
from crossbuild.builders.golang import (
    DEFAULT_LDFLAGS,
    BuildOptions,
    GoBuilder,
    join_ldflags,
    process_flags,
    render_ldflags,
)
from crossbuild.config import BuildConfig
from crossbuild.context import Context
from crossbuild.errors import (
    FileResolutionError,
    InvalidTargetError,
    MissingMainError,
    TemplateError,
    ToolchainError,
)

GOOD_MAIN = "package main\nvar a = 1\nfunc main() {println(0)}"
NO_MAIN = "package main\nconst a = 2\nfunc notMain() {println(0)}"

RUNTIME_TARGET = "linux_amd64"
BAD_TEMPLATE = 'template: tmpl:1: unexpected "}" in operand'


def _binary(target: str, ext: str, folder: Path) -> Artifact:
    os_, arch, *arm = target.split("_")
    return Artifact(
        name="foo",
        path=str(folder / "dist" / target / "foo"),
        goos=os_,
        goarch=arch,
        goarm=arm[0] if arm else "",
        type=ArtifactType.BINARY,
        extra={"Ext": ext, "Binary": "foo", "ID": "foo"},
    )


class TestProcessFlags:
    def test_renders_and_prefixes_each_flag(self, ctx: Context) -> None:
        artifact = Artifact(
            name="name", goos="darwin", goarch="amd64", goarm="7", extra={"Binary": "binary"}
        )
        source = [
            "flag",
            "{{.Version}}",
            "{{.Os}}",
            "{{.Arch}}",
            "{{.Arm}}",
            "{{.Binary}}",
            "{{.ArtifactName}}",
        ]
        flags = process_flags(ctx, artifact, [], source, "-testflag=")
        assert flags == [
            "-testflag=flag",
            "-testflag=1.2.3",
            "-testflag=darwin",
            "-testflag=amd64",
            "-testflag=7",
            "-testflag=binary",
            "-testflag=name",
        ]

    def test_empty_input_gives_empty_output(self, ctx: Context) -> None:
        assert process_flags(ctx, Artifact(), [], [], "-x=") == []

    def test_invalid_template_aborts_batch(self, ctx: Context) -> None:
        with pytest.raises(TemplateError) as exc_info:
            process_flags(ctx, Artifact(), [], ["ok", "{{.Version}"], "-testflag=")
        assert str(exc_info.value) == BAD_TEMPLATE

    def test_env_entries_visible_to_templates(self, ctx: Context) -> None:
        flags = process_flags(ctx, Artifact(), ["MODE=release"], ["-tags={{.Env.MODE}}"], "")
        assert flags == ["-tags=release"]


class TestLdflags:
    @pytest.mark.parametrize(
        ("flags", "expected"),
        [
            (
                ["-s -w -X main.version={{.Version}} -X main.commit={{.Commit}}"],
                "-ldflags=-s -w -X main.version={{.Version}} -X main.commit={{.Commit}}",
            ),
            (["-s -w", "-X main.version={{.Version}}"], "-ldflags=-s -w -X main.version={{.Version}}"),
        ],
    )
    def test_join(self, flags: list[str], expected: str) -> None:
        assert join_ldflags(flags) == expected

    def test_render_joins_into_single_argument(self, ctx: Context) -> None:
        assert render_ldflags(ctx, Artifact(), [], ["-s -w", "-X main.version={{.Version}}"]) == [
            "-ldflags=-s -w -X main.version=1.2.3"
        ]

    def test_render_without_ldflags_adds_nothing(self, ctx: Context) -> None:
        assert render_ldflags(ctx, Artifact(), [], []) == []


class TestWithDefaults:
    def test_fills_main_ldflags_and_targets(self) -> None:
        build = GoBuilder().with_defaults(BuildConfig(id="foo", binary="foo"))
        assert build.main == "."
        assert build.ldflags == [DEFAULT_LDFLAGS]
        assert len(build.targets) == 4

    def test_is_idempotent(self) -> None:
        builder = GoBuilder()
        once = builder.with_defaults(BuildConfig(id="foo", ldflags=["-s"]))
        assert builder.with_defaults(once) == once
        assert once.ldflags == ["-s"]


class TestBuild:
    def test_builds_every_target_and_records_artifacts(
        self, ctx: Context, good_main: Path, go_run: MagicMock
    ) -> None:
        build = BuildConfig(
            id="foo",
            binary="foo",
            env=["GO111MODULE=off"],
            targets=["linux_amd64", "darwin_amd64", "windows_amd64", "linux_arm_6", "js_wasm"],
            asmflags=[".=", "all="],
            gcflags=["all="],
            flags=["{{.Env.GO_FLAGS}}"],
        )
        ctx.env["GO_FLAGS"] = "-v"
        exts = {"windows_amd64": ".exe", "js_wasm": ".wasm"}
        builder = GoBuilder()
        for target in build.targets:
            builder.build(
                ctx,
                build,
                BuildOptions(
                    target=target,
                    name=build.binary,
                    path=str(good_main / "dist" / target / build.binary),
                    ext=exts.get(target, ""),
                ),
            )
        assert ctx.artifacts.list() == [
            _binary("linux_amd64", "", good_main),
            _binary("darwin_amd64", "", good_main),
            _binary("windows_amd64", ".exe", good_main),
            _binary("linux_arm_6", "", good_main),
            _binary("js_wasm", ".wasm", good_main),
        ]
        assert go_run.call_count == 5

    def test_command_order_and_environment(
        self, ctx: Context, good_main: Path, go_run: MagicMock
    ) -> None:
        ctx.env["HOME"] = "/home/me"
        build = BuildConfig(
            id="foo",
            binary="foo",
            main=".",
            env=["CGO_ENABLED=0", "TAG={{.Os}}"],
            flags=["-v", "-tags={{.Env.TAG}}"],
            asmflags=["all=-trimpath={{.Env.HOME}}"],
            gcflags=["all=-N -l"],
            ldflags=["-s -w", "-X main.version={{.Version}}"],
        )
        GoBuilder().build(
            ctx, build, BuildOptions(target="linux_arm_7", name="foo", path="dist/foo")
        )
        cmd, env, cwd = go_run.call_args[0]
        assert cmd == [
            "go",
            "build",
            "-v",
            "-tags=linux",
            "-asmflags=all=-trimpath=/home/me",
            "-gcflags=all=-N -l",
            "-ldflags=-s -w -X main.version=1.2.3",
            "-o",
            "dist/foo",
            ".",
        ]
        assert env["GOOS"] == "linux"
        assert env["GOARCH"] == "arm"
        assert env["GOARM"] == "7"
        assert env["CGO_ENABLED"] == "0"
        assert env["TAG"] == "linux"
        assert env["HOME"] == "/home/me"
        assert cwd is None

    def test_goarm_not_set_for_other_arches(
        self, ctx: Context, good_main: Path, go_run: MagicMock
    ) -> None:
        GoBuilder().build(ctx, BuildConfig(id="foo"), BuildOptions(target="linux_amd64"))
        _, env, _ = go_run.call_args[0]
        assert "GOARM" not in env

    def test_returned_artifact_is_recorded(
        self, ctx: Context, good_main: Path, go_run: MagicMock
    ) -> None:
        artifact = GoBuilder().build(
            ctx, BuildConfig(id="foo", binary="foo"), BuildOptions(target="linux_amd64")
        )
        assert ctx.artifacts.list() == [artifact]
        assert artifact.extra == {"Binary": "foo", "ID": "foo", "Ext": ""}

    def test_toolchain_failure_embeds_diagnostic(self, ctx: Context, good_main: Path) -> None:
        build = BuildConfig(id="buildid", flags=["-flag-that-dont-exists-to-force-failure"])
        with patch("crossbuild.builders.golang._run") as m:
            m.return_value = MagicMock(
                returncode=2,
                stdout="",
                stderr="flag provided but not defined: -flag-that-dont-exists-to-force-failure\n",
            )
            with pytest.raises(ToolchainError) as exc_info:
                GoBuilder().build(ctx, build, BuildOptions(target="darwin_amd64"))
        assert "flag provided but not defined: -flag-that-dont-exists-to-force-failure" in str(
            exc_info.value
        )
        assert exc_info.value.kind == "toolchain"
        assert ctx.artifacts.list() == []

    def test_spawn_failure_is_toolchain_error(self, ctx: Context, good_main: Path) -> None:
        with patch(
            "crossbuild.builders.golang._run",
            side_effect=FileNotFoundError(2, "No such file or directory", "go"),
        ):
            with pytest.raises(ToolchainError) as exc_info:
                GoBuilder().build(ctx, BuildConfig(id="foo"), BuildOptions(target="linux_amd64"))
        assert "No such file or directory" in str(exc_info.value)
        assert ctx.artifacts.list() == []

    def test_invalid_target(self, ctx: Context, good_main: Path, go_run: MagicMock) -> None:
        build = BuildConfig(id="foo", binary="foo", targets=["linux"])
        with pytest.raises(InvalidTargetError) as exc_info:
            GoBuilder().build(
                ctx,
                build,
                BuildOptions(target="linux", name="foo", path=str(good_main / "dist" / "linux" / "foo")),
            )
        assert str(exc_info.value) == "linux is not a valid build target"
        assert len(ctx.artifacts) == 0
        go_run.assert_not_called()

    @pytest.mark.parametrize("category", ["flags", "asmflags", "gcflags", "ldflags"])
    def test_invalid_flag_template(
        self, ctx: Context, good_main: Path, go_run: MagicMock, category: str
    ) -> None:
        build = BuildConfig(id="nametest", binary="nametest", **{category: ["{{.Version}"]})
        with pytest.raises(TemplateError) as exc_info:
            GoBuilder().build(ctx, build, BuildOptions(target=RUNTIME_TARGET))
        assert str(exc_info.value) == BAD_TEMPLATE
        go_run.assert_not_called()
        assert len(ctx.artifacts) == 0

    def test_invalid_ldflags_after_valid_flags(
        self, ctx: Context, good_main: Path, go_run: MagicMock
    ) -> None:
        build = BuildConfig(
            id="nametest", flags=["-v"], ldflags=["-s -w -X main.version={{.Version}"]
        )
        with pytest.raises(TemplateError) as exc_info:
            GoBuilder().build(ctx, build, BuildOptions(target=RUNTIME_TARGET))
        assert str(exc_info.value) == BAD_TEMPLATE

    def test_missing_env_key_in_build_env(
        self, ctx: Context, good_main: Path, go_run: MagicMock
    ) -> None:
        build = BuildConfig(id="foo", env=["X={{.Env.NOPE}}"])
        with pytest.raises(TemplateError) as exc_info:
            GoBuilder().build(ctx, build, BuildOptions(target=RUNTIME_TARGET))
        assert 'map has no entry for key "NOPE"' in str(exc_info.value)


class TestMainDetection:
    @pytest.mark.parametrize("main", ["", ".", "main.go", "*.go"])
    def test_without_main_func(
        self, ctx: Context, workdir: Path, go_run: MagicMock, main: str
    ) -> None:
        (workdir / "main.go").write_text(NO_MAIN)
        build = BuildConfig(id="no-main", binary="no-main", main=main)
        with pytest.raises(MissingMainError) as exc_info:
            GoBuilder().build(ctx, build, BuildOptions(target=RUNTIME_TARGET))
        assert str(exc_info.value) == "build for no-main does not contain a main function"
        go_run.assert_not_called()
        assert len(ctx.artifacts) == 0

    def test_nonexistent_main_file(self, ctx: Context, workdir: Path, go_run: MagicMock) -> None:
        (workdir / "main.go").write_text(NO_MAIN)
        build = BuildConfig(id="no-main", binary="no-main", main="foo.go")
        with pytest.raises(FileResolutionError) as exc_info:
            GoBuilder().build(ctx, build, BuildOptions(target=RUNTIME_TARGET))
        assert str(exc_info.value) == "stat foo.go: no such file or directory"
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)
        go_run.assert_not_called()

    @pytest.mark.parametrize("main", ["", "foo.go", "."])
    def test_main_func_not_in_main_go(
        self, ctx: Context, workdir: Path, go_run: MagicMock, main: str
    ) -> None:
        (workdir / "foo.go").write_text("package main\nfunc main() {println(0)}")
        build = BuildConfig(id="foo", binary="foo", env=["GO111MODULE=off"], main=main)
        GoBuilder().build(ctx, build, BuildOptions(target=RUNTIME_TARGET))
        assert len(ctx.artifacts) == 1

    def test_commented_out_main_does_not_count(
        self, ctx: Context, workdir: Path, go_run: MagicMock
    ) -> None:
        (workdir / "main.go").write_text(
            "package main\n// func main() {}\n/*\nfunc main() {}\n*/\nfunc notMain() {}"
        )
        with pytest.raises(MissingMainError):
            GoBuilder().build(ctx, BuildConfig(id="foo"), BuildOptions(target=RUNTIME_TARGET))

    def test_test_files_are_ignored(self, ctx: Context, workdir: Path, go_run: MagicMock) -> None:
        (workdir / "main_test.go").write_text(GOOD_MAIN)
        with pytest.raises(MissingMainError):
            GoBuilder().build(ctx, BuildConfig(id="foo"), BuildOptions(target=RUNTIME_TARGET))

    def test_main_resolved_inside_build_dir(
        self, ctx: Context, workdir: Path, go_run: MagicMock
    ) -> None:
        (workdir / "cmd").mkdir()
        (workdir / "cmd" / "main.go").write_text(GOOD_MAIN)
        build = BuildConfig(id="foo", dir="cmd", main=".")
        GoBuilder().build(ctx, build, BuildOptions(target=RUNTIME_TARGET, path="dist/foo"))
        cmd, _, cwd = go_run.call_args[0]
        assert cwd == Path("cmd")
        assert cmd[-3] == "-o"
        assert Path(cmd[-2]).resolve() == (workdir / "dist" / "foo").resolve()
        assert cmd[-1] == "."

    def test_main_resolved_against_project_root(
        self, ctx: Context, workdir: Path, go_run: MagicMock
    ) -> None:
        proj = workdir / "proj"
        (proj / "cmd").mkdir(parents=True)
        (proj / "cmd" / "main.go").write_text(GOOD_MAIN)
        ctx.project_root = proj
        build = BuildConfig(id="foo", main="./cmd")
        GoBuilder().build(
            ctx, build, BuildOptions(target=RUNTIME_TARGET, path=str(proj / "dist" / "foo"))
        )
        cmd, _, cwd = go_run.call_args[0]
        assert cwd == proj
        assert cmd[-3:] == ["-o", str(proj / "dist" / "foo"), "./cmd"]

    def test_missing_main_under_project_root(
        self, ctx: Context, workdir: Path, go_run: MagicMock
    ) -> None:
        (workdir / "main.go").write_text(GOOD_MAIN)
        proj = workdir / "proj"
        proj.mkdir()
        ctx.project_root = proj
        with pytest.raises(MissingMainError):
            GoBuilder().build(ctx, BuildConfig(id="foo"), BuildOptions(target=RUNTIME_TARGET))
        go_run.assert_not_called()
