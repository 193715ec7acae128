"""Tests for the image builder."""

import os

import pytest

from build_dmg.builder import ImageBuilder, build_image, select_strategy, select_variant
from build_dmg.config import BuildVariant, ContentItem, ItemKind
from build_dmg.errors import BuildTimeoutError, SetupError, ToolError
from build_dmg.mactools.hdiutil import ImageFormat
from build_dmg.staging import StagingStrategy

from conftest import read_image


def leftovers(config) -> list[str]:
    """Intermediate images left next to the output."""
    return [name for name in os.listdir(config.output_path.parent) if name.startswith("temp_")]


class TestSelection:
    @pytest.mark.parametrize(
        ("overrides", "expected"),
        [
            ({}, BuildVariant.COMPRESSED),
            ({"format": "UDBZ"}, BuildVariant.COMPRESSED),
            ({"format": "UDRO"}, BuildVariant.STANDARD),
            ({"format": "UDRW"}, BuildVariant.STANDARD),
            ({"use_hard_links": True}, BuildVariant.HARD_LINK_SAFE),
            ({"variant": BuildVariant.DIRECT, "use_hard_links": True}, BuildVariant.DIRECT),
        ],
    )
    def test_variant(self, make_config, overrides, expected):
        assert select_variant(make_config(**overrides)) is expected

    @pytest.mark.parametrize(
        ("variant", "use_hard_links", "expected"),
        [
            (BuildVariant.STANDARD, False, StagingStrategy.COPY),
            (BuildVariant.COMPRESSED, True, StagingStrategy.HARD_LINK),
            (BuildVariant.HARD_LINK_SAFE, False, StagingStrategy.SAFE_HARD_LINK),
            (BuildVariant.DIRECT, True, StagingStrategy.SYMLINK),
        ],
    )
    def test_strategy(self, make_config, variant, use_hard_links, expected):
        config = make_config(use_hard_links=use_hard_links)

        assert select_strategy(config, variant) is expected


class TestCompressed:
    async def test_app_with_applications_link(self, make_config, fake_runner, on_output, work_dir):
        config = make_config()

        output = await ImageBuilder(config, fake_runner, on_output).build()

        assert output == config.output_path
        image = read_image(output)
        assert image["format"] == "UDZO"
        assert image["level"] == "6"
        assert image["entries"] == [".DS_Store", "Applications", "MyApp.app"]
        assert fake_runner.verbs() == ["create", "attach", "detach", "info", "convert"]
        assert fake_runner.commands[0][fake_runner.commands[0].index("-format") + 1] == "UDRW"
        assert leftovers(config) == []
        assert os.listdir(work_dir) == []

    async def test_bundle_is_filtered_on_the_volume(
        self, make_config, fake_runner, on_output, app_bundle
    ):
        config = make_config()

        await ImageBuilder(config, fake_runner, on_output).build()

        volume = fake_runner.volumes[next(iter(fake_runner.volumes))]
        assert (volume / "MyApp.app" / "Contents" / "MacOS" / "MyApp").is_file()
        assert not (volume / "MyApp.app" / "Contents" / ".DS_Store").exists()
        assert (app_bundle / "Contents" / ".DS_Store").exists()

    async def test_attach_failure_leaves_nothing_behind(
        self, make_config, make_runner, on_output, work_dir
    ):
        config = make_config()
        runner = make_runner(fail={"attach": 1})

        with pytest.raises(ToolError):
            await ImageBuilder(config, runner, on_output).build()

        assert not config.output_path.exists()
        assert "SetFile" not in runner.verbs()
        assert "convert" not in runner.verbs()
        assert leftovers(config) == []
        assert os.listdir(work_dir) == []

    async def test_convert_failure_removes_partial_output(
        self, make_config, make_runner, on_output
    ):
        config = make_config()
        runner = make_runner(fail={"convert": 1})

        with pytest.raises(ToolError, match="convert"):
            await ImageBuilder(config, runner, on_output).build()

        assert not config.output_path.exists()
        assert leftovers(config) == []
        assert runner.mounts == {}

    async def test_volume_and_file_icon(
        self, make_config, fake_runner, on_output, icon_file
    ):
        config = make_config(icon=icon_file)

        await ImageBuilder(config, fake_runner, on_output).build()

        volume = fake_runner.volumes[next(iter(fake_runner.volumes))]
        assert (volume / ".VolumeIcon.icns").read_bytes() == icon_file.read_bytes()
        assert fake_runner.verbs()[-4:] == ["sips", "DeRez", "Rez", "SetFile"]
        assert fake_runner.commands[-1] == ["SetFile", "-a", "C", str(config.output_path)]

    async def test_file_icon_failure_is_only_a_warning(
        self, make_config, make_runner, on_output, output_log, icon_file
    ):
        config = make_config(file_icon=icon_file)
        runner = make_runner(fail={"Rez": 1})

        output = await ImageBuilder(config, runner, on_output).build()

        assert read_image(output)["format"] == "UDZO"
        assert any("failed to set file icon" in line for line in output_log)

    async def test_existing_output_is_replaced(self, make_config, fake_runner, on_output):
        config = make_config()
        config.output_path.parent.mkdir(parents=True)
        config.output_path.write_text("stale")

        await ImageBuilder(config, fake_runner, on_output).build()

        assert read_image(config.output_path)["format"] == "UDZO"


class TestStandard:
    async def test_read_only_without_customization(self, make_config, fake_runner, on_output):
        config = make_config(format="UDRO")

        await ImageBuilder(config, fake_runner, on_output).build()

        image = read_image(config.output_path)
        assert fake_runner.verbs() == ["create"]
        assert image["format"] == "UDRO"
        assert image["layout"] is True

    async def test_writable_request_becomes_read_only(self, make_config, fake_runner, on_output):
        config = make_config(format="UDRW")

        await ImageBuilder(config, fake_runner, on_output).build()

        assert fake_runner.verbs() == ["create", "convert"]
        assert read_image(config.output_path)["format"] == "UDRO"
        assert leftovers(config) == []

    async def test_icon_goes_through_mount(
        self, make_config, fake_runner, on_output, icon_file
    ):
        config = make_config(format="UDRO", icon=icon_file, file_icon=None)

        await ImageBuilder(config, fake_runner, on_output).build()

        verbs = fake_runner.verbs()
        assert verbs[:2] == ["create", "attach"]
        assert "convert" in verbs
        assert read_image(config.output_path)["format"] == "UDRO"
        assert ".VolumeIcon.icns" in read_image(config.output_path)["entries"]

    async def test_customized_image_keeps_configured_level(
        self, make_config, fake_runner, on_output, icon_file
    ):
        config = make_config(
            variant=BuildVariant.STANDARD, format="UDZO", compression_level="3", icon=icon_file
        )

        await ImageBuilder(config, fake_runner, on_output).build()

        assert "attach" in fake_runner.verbs()
        image = read_image(config.output_path)
        assert image["format"] == "UDZO"
        assert image["level"] == "3"

    @pytest.mark.parametrize(("level", "expected"), [(None, "6"), ("2", "2")])
    async def test_direct_creation_level(
        self, make_config, fake_runner, on_output, level, expected
    ):
        config = make_config(variant=BuildVariant.STANDARD, compression_level=level)

        await ImageBuilder(config, fake_runner, on_output).build()

        assert fake_runner.verbs() == ["create"]
        assert read_image(config.output_path)["level"] == expected


class TestDirect:
    async def test_staging_holds_links(self, make_config, make_runner, on_output, app_bundle):
        config = make_config(variant=BuildVariant.DIRECT, format="UDRO")
        runner = make_runner()
        staged = {}

        original_create = runner._create

        def spy(cmd):
            source = cmd[cmd.index("-srcfolder") + 1]
            for name in os.listdir(source):
                staged[name] = os.path.islink(os.path.join(source, name))
            return original_create(cmd)

        runner._create = spy

        await ImageBuilder(config, runner, on_output).build()

        assert staged == {"MyApp.app": True, "Applications": True, ".DS_Store": False}
        assert os.path.isdir(app_bundle)


class TestExactSize:
    async def test_exact_size_build(self, tmp_path, make_config, app_bundle, fake_runner, on_output):
        readme = tmp_path / "src" / "README.txt"
        readme.write_text("read me")
        config = make_config(
            variant=BuildVariant.EXACT_SIZE,
            format="UDRO",
            contents=(
                ContentItem(ItemKind.DIR, app_bundle, 100, 100),
                ContentItem(ItemKind.FILE, readme, 300, 100),
            ),
        )

        await ImageBuilder(config, fake_runner, on_output).build()

        create = fake_runner.commands[0]
        assert create[create.index("-srcfolder") + 1] == str(app_bundle)
        assert create[create.index("-size") + 1] == "200m"
        image = read_image(config.output_path)
        assert image["format"] == "UDZO"
        assert image["level"] == "9"
        assert image["entries"] == [".DS_Store", "Applications", "MyApp.app", "README.txt"]
        assert leftovers(config) == []

    async def test_defaults_to_maximum_compression(self, make_config, fake_runner, on_output):
        config = make_config(variant=BuildVariant.EXACT_SIZE)

        await ImageBuilder(config, fake_runner, on_output).build()

        assert config.compression_level is None
        assert read_image(config.output_path)["level"] == "9"

    async def test_configured_level_wins(self, make_config, fake_runner, on_output):
        config = make_config(variant=BuildVariant.EXACT_SIZE, compression_level="4")

        await ImageBuilder(config, fake_runner, on_output).build()

        assert read_image(config.output_path)["level"] == "4"

    async def test_needs_app_bundle(self, tmp_path, make_config, fake_runner, on_output):
        readme = tmp_path / "README.txt"
        readme.write_text("x")
        config = make_config(
            variant=BuildVariant.EXACT_SIZE,
            contents=(ContentItem(ItemKind.FILE, readme),),
        )

        with pytest.raises(SetupError, match="no .app directory"):
            await ImageBuilder(config, fake_runner, on_output).build()

        assert fake_runner.commands == []


class TestHardLinkSafe:
    async def test_uncompressed_is_created_with_size(self, make_config, fake_runner, on_output):
        config = make_config(use_hard_links=True, format="UDRO")

        await ImageBuilder(config, fake_runner, on_output).build()

        assert fake_runner.verbs() == ["create"]
        create = fake_runner.commands[0]
        assert create[create.index("-size") + 1] == "100m"
        image = read_image(config.output_path)
        assert image["format"] == "UDRO"
        assert image["entries"] == [".DS_Store", "Applications", "MyApp.app"]

    async def test_compressed_goes_through_mount(self, make_config, fake_runner, on_output):
        config = make_config(use_hard_links=True, format="UDBZ")

        await ImageBuilder(config, fake_runner, on_output).build()

        assert fake_runner.verbs() == ["create", "attach", "detach", "info", "convert"]
        assert read_image(config.output_path)["format"] == "UDBZ"


class TestLifecycle:
    async def test_invalid_config_runs_nothing(self, make_config, fake_runner, on_output):
        config = make_config(label_size=40)

        with pytest.raises(SetupError, match="label-size"):
            await ImageBuilder(config, fake_runner, on_output).build()

        assert fake_runner.commands == []

    async def test_timeout(self, make_config, make_runner, on_output, work_dir):
        config = make_config(timeout=0.05)
        runner = make_runner(delay=5)

        with pytest.raises(BuildTimeoutError):
            await ImageBuilder(config, runner, on_output).build()

        assert not config.output_path.exists()
        assert leftovers(config) == []
        assert os.listdir(work_dir) == []

    async def test_optimize_app_size(self, make_config, fake_runner, on_output, app_bundle):
        scratch = app_bundle / "Contents" / "MacOS" / "leftover.tmp"
        scratch.write_text("x")
        config = make_config(optimize_app_size=True)

        await build_image(config, on_output, fake_runner)

        assert not scratch.exists()
        assert not (app_bundle / "Contents" / ".DS_Store").exists()

    async def test_output_directory_is_created(self, make_config, fake_runner, on_output, tmp_path):
        config = make_config(output=tmp_path / "deep" / "er" / "MyApp.dmg")

        await build_image(config, on_output, fake_runner)

        assert (tmp_path / "deep" / "er" / "MyApp.dmg").is_file()


def test_image_format_of_default_config(make_config):
    assert make_config().image_format is ImageFormat.UDZO
