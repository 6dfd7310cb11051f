import logging
import pytest
import yaml
from typer.testing import CliRunner
from vidforge.main import app

runner = CliRunner()

@pytest.fixture(autouse=True)
def reset_vidforge_logger():
    yield
    logger = logging.getLogger("vidforge")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True

@pytest.fixture
def config_file(tmp_path, fake_tools):
    ffmpeg, ffprobe = fake_tools
    path = tmp_path / "vidforge.yaml"
    path.write_text(yaml.safe_dump({
        "general": {
            "work_dir": str(tmp_path / "work"),
            "ffmpeg_path": ffmpeg,
            "ffprobe_path": ffprobe,
            "threads": 2,
            "log_dir": str(tmp_path / "logs"),
        },
        "timeouts": {"kill_grace": 2.0},
    }))
    return path

def test_check_ok(config_file):
    result = runner.invoke(app, ["check", "--config", str(config_file)])
    assert result.exit_code == 0
    assert "OK" in result.output

def test_check_missing_tools(tmp_path):
    path = tmp_path / "vidforge.yaml"
    path.write_text(yaml.safe_dump({"general": {
        "ffmpeg_path": str(tmp_path / "no-ffmpeg"),
        "ffprobe_path": str(tmp_path / "no-ffprobe"),
    }}))
    result = runner.invoke(app, ["check", "--config", str(path)])
    assert result.exit_code == 1

def test_process_success(config_file, make_video, tmp_path, list_files):
    videos = [make_video("a.mp4"), make_video("b.mp4")]
    result = runner.invoke(app, ["process", *map(str, videos), "--config", str(config_file), "--quality", "low"])

    assert result.exit_code == 0, result.output
    assert "succeeded=2" in result.output
    assert len(list_files(tmp_path / "work")) == 8
    assert (tmp_path / "logs" / "vidforge.log").exists()

def test_process_partial_failure_exits_nonzero(config_file, make_video):
    videos = [make_video("a.mp4"), make_video("corrupt.mp4")]
    result = runner.invoke(app, ["process", *map(str, videos), "--config", str(config_file)])

    assert result.exit_code == 1
    assert "succeeded=1" in result.output
    assert "failed=1" in result.output

def test_process_work_dir_override(config_file, make_video, tmp_path, list_files):
    override = tmp_path / "elsewhere"
    result = runner.invoke(app, ["process", str(make_video()), "-c", str(config_file), "-o", str(override), "-t", "1"])
    assert result.exit_code == 0, result.output
    assert len(list_files(override)) == 4
    assert list_files(tmp_path / "work") == []

def test_process_invalid_config(tmp_path, make_video):
    path = tmp_path / "broken.yaml"
    path.write_text("general: [unclosed")
    result = runner.invoke(app, ["process", str(make_video()), "--config", str(path)])
    assert result.exit_code == 1
