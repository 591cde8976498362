"""
Unit tests for desktop background integration
"""

import subprocess
from unittest.mock import Mock

import pytest

from himawari_mosaic import wallpaper
from himawari_mosaic.errors import WallpaperError
from himawari_mosaic.wallpaper import open_in_viewer, set_wallpaper, wallpaper_commands


@pytest.fixture
def disc(tmp_path):
    path = tmp_path / "fulldisc-2022-09-21 00_10.png"
    path.write_bytes(b"\x89PNG not really")
    return path


class TestWallpaperCommands:
    def test_gnome_sets_light_and_dark_uri(self, disc):
        cmds = wallpaper_commands(disc, "linux")
        uri = disc.as_uri()
        assert ["gsettings", "set", "org.gnome.desktop.background", "picture-uri", uri] in cmds
        assert ["gsettings", "set", "org.gnome.desktop.background", "picture-uri-dark", uri] in cmds
        assert cmds[-1][-2:] == ["picture-options", "scaled"]

    def test_macos_uses_finder(self, disc):
        (cmd,) = wallpaper_commands(disc, "darwin")
        assert cmd[:2] == ["osascript", "-e"]
        assert str(disc) in cmd[2]

    def test_unknown_platform(self, disc):
        with pytest.raises(WallpaperError):
            wallpaper_commands(disc, "plan9")


class TestSetWallpaper:
    def test_runs_every_command(self, monkeypatch, disc):
        run = Mock()
        monkeypatch.setattr(wallpaper.subprocess, "run", run)
        set_wallpaper(disc, platform="linux")
        assert run.call_count == 3
        for call in run.call_args_list:
            assert call.kwargs["check"] is True

    def test_refuses_empty_file(self, monkeypatch, tmp_path):
        run = Mock()
        monkeypatch.setattr(wallpaper.subprocess, "run", run)
        empty = tmp_path / "empty.png"
        empty.write_bytes(b"")
        with pytest.raises(WallpaperError, match="missing or empty"):
            set_wallpaper(empty, platform="linux")
        with pytest.raises(WallpaperError):
            set_wallpaper(tmp_path / "absent.png", platform="linux")
        run.assert_not_called()

    def test_failed_command(self, monkeypatch, disc):
        def boom(cmd, **kwargs):
            raise subprocess.CalledProcessError(1, cmd, stderr="No such schema")

        monkeypatch.setattr(wallpaper.subprocess, "run", boom)
        with pytest.raises(WallpaperError, match="No such schema"):
            set_wallpaper(disc, platform="linux")

    def test_missing_tool(self, monkeypatch, disc):
        monkeypatch.setattr(wallpaper.subprocess, "run", Mock(side_effect=FileNotFoundError("osascript")))
        with pytest.raises(WallpaperError, match="not available"):
            set_wallpaper(disc, platform="darwin")


class TestOpenInViewer:
    @pytest.mark.parametrize("platform,opener", [("linux", "xdg-open"), ("darwin", "open")])
    def test_uses_platform_opener(self, monkeypatch, disc, platform, opener):
        popen = Mock()
        monkeypatch.setattr(wallpaper.subprocess, "Popen", popen)
        open_in_viewer(disc, platform=platform)
        popen.assert_called_once_with([opener, str(disc.resolve())])
