"""Shared fixtures.

FakeRunner stands in for the macOS tools: images are plain directories,
attach copies an image's contents onto the mount point and detach copies
them back. The "image file" hdiutil writes is a JSON manifest describing
the volume, so tests can check what ended up on it.
"""

import asyncio
import json
import os
import plistlib
import shutil
from pathlib import Path

import pytest

from build_dmg.config import APPLICATIONS_LINK, BuildConfig, ContentItem, ItemKind
from build_dmg.utils.process import ProcessRunner


def read_image(path: Path) -> dict:
    """Manifest of an image written by FakeRunner."""
    return json.loads(Path(path).read_text())


def _option(cmd: list[str], name: str) -> str | None:
    if name in cmd:
        return cmd[cmd.index(name) + 1]
    return None


def _level(cmd: list[str]) -> str | None:
    imagekey = _option(cmd, "-imagekey")
    return imagekey.split("=", 1)[1] if imagekey else None


def _empty_dir(path: Path) -> None:
    for child in path.iterdir():
        if child.is_symlink() or not child.is_dir():
            child.unlink()
        else:
            shutil.rmtree(child)


class FakeRunner(ProcessRunner):
    """Records commands and simulates hdiutil and the icon tools on the local filesystem.

    Args:
        store: Directory for the simulated volume contents
        fail: Map of verb (hdiutil verb or tool name, "force-detach" for
            detach -force) to the exit code it should fail with
        delay: Seconds every command takes
    """

    def __init__(self, store: Path, fail: dict[str, int] | None = None, delay: float = 0) -> None:
        super().__init__()
        self.store = store
        self.fail = dict(fail or {})
        self.delay = delay
        self.commands: list[list[str]] = []
        self.volumes: dict[Path, Path] = {}
        self.mounts: dict[Path, Path] = {}

    def verbs(self) -> list[str]:
        """hdiutil verbs and other tool names, in call order."""
        return [cmd[1] if cmd[0] == "hdiutil" else cmd[0] for cmd in self.commands]

    async def run(self, cmd, cwd=None, env=None, on_output=None) -> int:
        exit_code, output = await self.capture(cmd, cwd=cwd, env=env)
        if on_output and output:
            await on_output(output)
        return exit_code

    async def capture(self, cmd, cwd=None, env=None) -> tuple[int, str]:
        cmd = [str(part) for part in cmd]
        self.commands.append(cmd)
        if self.delay:
            await asyncio.sleep(self.delay)

        verb = cmd[1] if cmd[0] == "hdiutil" else cmd[0]
        key = "force-detach" if verb == "detach" and "-force" in cmd else verb
        if key in self.fail:
            return self.fail[key], f"{key}: simulated failure\n"

        handler = getattr(self, f"_{verb.lower()}", None)
        if handler is None:
            return 0, ""
        return handler(cmd)

    def _create(self, cmd: list[str]) -> tuple[int, str]:
        source = Path(_option(cmd, "-srcfolder"))
        out = Path(cmd[-1])
        backing = self.store / f"volume-{len(self.volumes)}"
        if source.suffix == ".app":
            backing.mkdir(parents=True)
            shutil.copytree(source, backing / source.name, symlinks=True)
        else:
            shutil.copytree(source, backing, symlinks=True)
        self.volumes[out] = backing
        size = _option(cmd, "-size")
        self._write_manifest(out, backing, _option(cmd, "-format"), size=size, level=_level(cmd))
        return 0, f"created: {out}\n"

    def _attach(self, cmd: list[str]) -> tuple[int, str]:
        image = Path(cmd[2])
        mount_point = Path(_option(cmd, "-mountpoint"))
        if image not in self.volumes:
            return 1, "hdiutil: attach failed - No such file or directory\n"
        shutil.copytree(self.volumes[image], mount_point, symlinks=True, dirs_exist_ok=True)
        self.mounts[mount_point] = image
        return 0, f"/dev/disk9s1\tApple_HFS\t{mount_point}\n"

    def _detach(self, cmd: list[str]) -> tuple[int, str]:
        mount_point = Path(cmd[2])
        image = self.mounts.pop(mount_point, None)
        if image is None:
            return 1, "hdiutil: detach failed - No such file or directory\n"
        backing = self.volumes[image]
        shutil.rmtree(backing)
        shutil.copytree(mount_point, backing, symlinks=True)
        _empty_dir(mount_point)
        return 0, '"disk9" ejected.\n'

    def _convert(self, cmd: list[str]) -> tuple[int, str]:
        source = Path(cmd[2])
        out = Path(_option(cmd, "-o"))
        self._write_manifest(out, self.volumes[source], _option(cmd, "-format"), level=_level(cmd))
        return 0, f"created: {out}\n"

    def _info(self, cmd: list[str]) -> tuple[int, str]:
        images = [
            {
                "image-path": str(image),
                "system-entities": [
                    {"content-hint": "GUID_partition_scheme", "dev-entry": "/dev/disk9"},
                    {"dev-entry": "/dev/disk9s1", "mount-point": str(mount_point)},
                ],
            }
            for mount_point, image in self.mounts.items()
        ]
        return 0, plistlib.dumps({"images": images}).decode("utf-8")

    def _derez(self, cmd: list[str]) -> tuple[int, str]:
        return 0, "data 'icns' (-16455) {\n};\n"

    def _write_manifest(self, out: Path, backing: Path, fmt, size=None, level=None) -> None:
        manifest = {
            "format": fmt,
            "size": size,
            "level": level,
            "entries": sorted(os.listdir(backing)),
            "layout": (backing / ".DS_Store").is_file(),
        }
        out.write_text(json.dumps(manifest))


@pytest.fixture
def make_runner(tmp_path: Path):
    """Factory for FakeRunner instances sharing one volume store."""

    def factory(**kwargs) -> FakeRunner:
        return FakeRunner(tmp_path / "fake-volumes", **kwargs)

    return factory


@pytest.fixture
def fake_runner(make_runner) -> FakeRunner:
    return make_runner()


async def create_image(runner: FakeRunner, source: Path, image: Path) -> None:
    """Create a writable image from source without recording the command."""
    await runner.capture(
        ["hdiutil", "create", "-srcfolder", str(source), "-format", "UDRW", str(image)]
    )
    runner.commands.pop()


@pytest.fixture
def tools_available(monkeypatch):
    """Every required tool resolves on PATH."""
    monkeypatch.setattr(shutil, "which", lambda name: f"/usr/bin/{name}")


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Base directory for temporary build directories."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def app_bundle(tmp_path: Path) -> Path:
    """A minimal application bundle with some junk the stager must skip."""
    app = tmp_path / "src" / "MyApp.app"
    (app / "Contents" / "MacOS").mkdir(parents=True)
    (app / "Contents" / "Resources").mkdir()
    (app / "Contents" / "MacOS" / "MyApp").write_bytes(b"\xcf\xfa\xed\xfe" + b"\0" * 1020)
    (app / "Contents" / "Info.plist").write_bytes(
        plistlib.dumps({"CFBundleName": "MyApp", "CFBundleIconFile": "AppIcon"})
    )
    (app / "Contents" / "Resources" / "AppIcon.icns").write_bytes(b"icns\0\0\0\x08")
    (app / "Contents" / ".DS_Store").write_bytes(b"junk")
    (app / "__MACOSX").mkdir()
    (app / "__MACOSX" / "._MyApp").write_bytes(b"junk")
    return app


@pytest.fixture
def icon_file(tmp_path: Path) -> Path:
    path = tmp_path / "assets" / "volume.icns"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"icns\0\0\0\x08")
    return path


@pytest.fixture
def output_log() -> list[str]:
    return []


@pytest.fixture
def on_output(output_log: list[str]):
    async def sink(text: str) -> None:
        output_log.append(text)

    return sink


@pytest.fixture
def make_config(tmp_path: Path, app_bundle: Path, work_dir: Path):
    """Factory for a config with MyApp.app and an /Applications link."""

    def factory(**overrides) -> BuildConfig:
        settings = {
            "title": "MyApp",
            "contents": (
                ContentItem(ItemKind.DIR, app_bundle, x=149, y=190),
                ContentItem(ItemKind.LINK, APPLICATIONS_LINK, x=490, y=190),
            ),
            "output": tmp_path / "dist" / "MyApp.dmg",
            "temp_dir": work_dir,
        }
        settings.update(overrides)
        return BuildConfig(**settings)

    return factory
