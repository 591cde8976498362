"""
Unit tests for the command-line entry point and logging setup
"""

import logging
from pathlib import Path
from unittest.mock import Mock

import pytest

import himawari_mosaic.__main__ as cli
from himawari_mosaic.errors import InvariantViolation, MalformedLocator, TileFetchFailed
from himawari_mosaic.logging_setup import log_file_name, setup_logging
from himawari_mosaic.models import GridCoordinate, SnapshotId
from himawari_mosaic.services.artifacts import MosaicArtifact

LATEST = SnapshotId(year=2024, month=5, day=17, hour=12, minute=10)


@pytest.fixture
def fake_run(monkeypatch, tmp_path):
    """Replace the network pipeline and OS hooks; record what the CLI asked for."""
    calls = {"snapshots": [], "wallpaper": Mock(), "viewer": Mock(), "resize": []}

    async def run_snapshot(snapshot, destination_dir, **kwargs):
        calls["snapshots"].append((snapshot, Path(destination_dir)))
        return MosaicArtifact(
            path=tmp_path / "fulldisc.png", width=11000, height=11000, size=1, snapshot=snapshot
        )

    monkeypatch.setattr(cli, "run_snapshot", run_snapshot)
    monkeypatch.setattr(cli, "setup_logging", Mock())
    monkeypatch.setattr(MosaicArtifact, "resize", lambda self, w, h: calls["resize"].append((w, h)))
    monkeypatch.setattr(cli, "closest_snapshot", lambda: LATEST)
    monkeypatch.setattr(cli, "set_wallpaper", calls["wallpaper"])
    monkeypatch.setattr(cli, "open_in_viewer", calls["viewer"])
    return calls


class TestParser:
    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.oneshot is None
        assert not args.resize and not args.watch and not args.open
        assert args.completed_dir is None and args.config_file is None

    def test_oneshot_is_parsed(self):
        args = cli.build_parser().parse_args(["--oneshot", "2022-09-21 00:10"])
        assert args.oneshot == SnapshotId(year=2022, month=9, day=21, hour=0, minute=10)

    def test_bad_oneshot_exits(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.build_parser().parse_args(["--oneshot", "21/09/2022"])
        assert exc_info.value.code == 2
        assert "YYYY-MM-DD HH:MM" in capsys.readouterr().err

    def test_verbose_and_quiet_are_exclusive(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["-v", "-q"])

    def test_watch_and_oneshot_are_rejected(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.parse_args(["--watch", "--oneshot", "2022-09-21 00:10"])
        assert exc_info.value.code == 2
        assert "--watch cannot be combined with --oneshot" in capsys.readouterr().err


class TestMain:
    def test_latest_snapshot_becomes_wallpaper(self, fake_run, tmp_path):
        assert cli.main(["--completed-dir", str(tmp_path)]) == 0
        assert fake_run["snapshots"] == [(LATEST, tmp_path)]
        fake_run["wallpaper"].assert_called_once_with(tmp_path / "fulldisc.png")
        fake_run["viewer"].assert_not_called()
        assert fake_run["resize"] == []

    def test_oneshot_leaves_wallpaper_alone(self, fake_run, tmp_path):
        code = cli.main(["--oneshot", "2022-09-21 00:10", "--completed-dir", str(tmp_path), "--open"])
        assert code == 0
        assert fake_run["snapshots"][0][0] == SnapshotId(year=2022, month=9, day=21, hour=0, minute=10)
        fake_run["wallpaper"].assert_not_called()
        fake_run["viewer"].assert_called_once()

    def test_resize_and_no_wallpaper(self, fake_run, tmp_path):
        assert cli.main(["--resize", "--no-wallpaper", "--completed-dir", str(tmp_path)]) == 0
        assert fake_run["resize"] == [(5120, 5120)]
        fake_run["wallpaper"].assert_not_called()

    def test_pipeline_failure_exits_1(self, monkeypatch, fake_run, tmp_path, caplog):
        async def failing(snapshot, destination_dir, **kwargs):
            raise TileFetchFailed(GridCoordinate(row=1, col=1), 8, None)

        monkeypatch.setattr(cli, "run_snapshot", failing)
        with caplog.at_level(logging.ERROR):
            assert cli.main(["--completed-dir", str(tmp_path)]) == 1
        assert "R1_C1" in caplog.text
        fake_run["wallpaper"].assert_not_called()

    def test_watch_repeats_until_interrupted(self, monkeypatch, fake_run, tmp_path):
        sleeps = []

        def sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) == 2:
                raise KeyboardInterrupt

        monkeypatch.setattr(cli.time, "sleep", sleep)
        assert cli.main(["--watch", "--completed-dir", str(tmp_path)]) == 130
        assert len(fake_run["snapshots"]) == 2
        assert sleeps == [cli.REFRESH_INTERVAL] * 2

    def test_watch_stops_on_invariant_violation(self, monkeypatch, fake_run, tmp_path):
        runs = []

        async def misconfigured(snapshot, destination_dir, **kwargs):
            runs.append(snapshot)
            raise MalformedLocator("scheme must be http or https: 'ftp://example.org'")

        sleep = Mock()
        monkeypatch.setattr(cli, "run_snapshot", misconfigured)
        monkeypatch.setattr(cli.time, "sleep", sleep)
        with pytest.raises(InvariantViolation):
            cli.main(["--watch", "--completed-dir", str(tmp_path)])
        assert len(runs) == 1
        sleep.assert_not_called()


class TestCompletedDir:
    def test_config_file_sets_completed_dir(self, monkeypatch, fake_run, tmp_path):
        monkeypatch.setattr(cli, "COMPLETED_DIR_OVERRIDE", None)
        config_file = tmp_path / "config.yml"
        config_file.write_text(f"completed: {tmp_path / 'from-file'}\n", encoding="utf-8")
        assert cli.main(["--config-file", str(config_file)]) == 0
        assert fake_run["snapshots"] == [(LATEST, tmp_path / "from-file")]

    def test_flag_beats_config_file(self, monkeypatch, fake_run, tmp_path):
        monkeypatch.setattr(cli, "COMPLETED_DIR_OVERRIDE", None)
        config_file = tmp_path / "config.yml"
        config_file.write_text(f"completed: {tmp_path / 'from-file'}\n", encoding="utf-8")
        cli.main(["--config-file", str(config_file), "--completed-dir", str(tmp_path / "flag")])
        assert fake_run["snapshots"][0][1] == tmp_path / "flag"

    def test_env_beats_config_file(self, monkeypatch, fake_run, tmp_path):
        monkeypatch.setattr(cli, "COMPLETED_DIR_OVERRIDE", str(tmp_path / "env"))
        monkeypatch.setattr(cli, "DEFAULT_COMPLETED_DIR", tmp_path / "env")
        config_file = tmp_path / "config.yml"
        config_file.write_text(f"completed: {tmp_path / 'from-file'}\n", encoding="utf-8")
        cli.main(["--config-file", str(config_file)])
        assert fake_run["snapshots"][0][1] == tmp_path / "env"

    def test_missing_config_file_is_created(self, monkeypatch, fake_run, tmp_path):
        monkeypatch.setattr(cli, "COMPLETED_DIR_OVERRIDE", None)
        config_file = tmp_path / "nested" / "config.yml"
        assert cli.main(["--config-file", str(config_file)]) == 0
        assert config_file.is_file()
        assert "completed:" in config_file.read_text(encoding="utf-8")

    def test_broken_config_file_exits_1(self, fake_run, tmp_path, caplog):
        config_file = tmp_path / "config.yml"
        config_file.write_text("completed: [unterminated\n", encoding="utf-8")
        with caplog.at_level(logging.ERROR):
            assert cli.main(["--config-file", str(config_file)]) == 1
        assert "config.yml" in caplog.text
        assert fake_run["snapshots"] == []


class TestLoggingSetup:
    def test_verbose_writes_dated_log_file(self, tmp_path):
        setup_logging(verbose=True, log_dir=tmp_path)
        logging.getLogger("himawari_mosaic.test").debug("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()
        log_file = tmp_path / log_file_name()
        assert "hello file" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger().level == logging.DEBUG

    def test_idempotent(self, tmp_path):
        setup_logging(level="WARNING")
        handlers = list(logging.getLogger().handlers)
        setup_logging(level="DEBUG")
        assert logging.getLogger().handlers == handlers
        assert logging.getLogger().level == logging.WARNING

    def test_env_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        setup_logging()
        assert logging.getLogger().level == logging.ERROR
