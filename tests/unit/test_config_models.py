import pytest
from pathlib import Path
from pydantic import ValidationError
from vidforge.config.loader import load_config
from vidforge.config.models import AppConfig, GeneralConfig, ProcessingOptions, parse_bitrate
from vidforge.domain.models import QualityPreset, VideoCodec

def test_processing_option_defaults():
    options = ProcessingOptions()
    assert (options.max_width, options.max_height) == (1920, 1080)
    assert options.target_bitrate == "2M"
    assert options.target_bitrate_bps == 2_000_000
    assert options.frame_rate == 30
    assert options.codec == VideoCodec.H264
    assert options.quality == QualityPreset.MEDIUM
    assert options.thumbnail_offset_seconds == 1.0
    assert options.preview_duration_seconds == 10.0

def test_processing_options_are_immutable():
    options = ProcessingOptions()
    with pytest.raises(ValidationError):
        options.max_width = 640

@pytest.mark.parametrize("value, expected", [
    ("2M", 2_000_000),
    ("800k", 800_000),
    ("1.5M", 1_500_000),
    ("1500000", 1_500_000),
])
def test_parse_bitrate(value, expected):
    assert parse_bitrate(value) == expected

@pytest.mark.parametrize("value", ["", "fast", "2MB", "-1M"])
def test_invalid_bitrate(value):
    with pytest.raises(ValidationError):
        ProcessingOptions(target_bitrate=value)

def test_invalid_threads():
    with pytest.raises(ValidationError):
        GeneralConfig(threads=0)

def test_general_defaults():
    general = GeneralConfig()
    assert general.max_input_bytes == 500 * 1024 * 1024
    assert general.ffmpeg_path == "ffmpeg"
    assert general.keep_original is True

def test_timeout_defaults():
    config = AppConfig()
    assert config.timeouts.tool_check == 5.0
    assert config.timeouts.probe == 30.0
    assert config.timeouts.encode == 1800.0
    assert config.timeouts.thumbnail == 120.0
    assert config.timeouts.preview == 300.0
    assert (config.output.thumbnail_max_width, config.output.thumbnail_max_height) == (400, 300)
    assert (config.output.preview_max_width, config.output.preview_max_height) == (640, 480)

def test_load_config(tmp_path):
    f = tmp_path / "vidforge.yaml"
    f.write_text("""
general:
  threads: 4
  work_dir: /srv/media
timeouts:
  encode: 600
options:
  quality: high
  codec: h265
  target_bitrate: 4M
""")
    config = load_config(f)
    assert config.general.threads == 4
    assert config.general.work_dir == Path("/srv/media")
    assert config.timeouts.encode == 600
    assert config.options.quality == QualityPreset.HIGH
    assert config.options.codec == VideoCodec.H265
    assert config.options.target_bitrate_bps == 4_000_000

def test_load_config_missing_file_uses_defaults(tmp_path):
    config = load_config(tmp_path / "nope.yaml")
    assert config == AppConfig()

def test_load_config_empty_file(tmp_path):
    f = tmp_path / "empty.yaml"
    f.write_text("")
    assert load_config(f) == AppConfig()

def test_load_config_malformed_yaml(tmp_path):
    f = tmp_path / "bad.yaml"
    f.write_text("general: [threads: 4\n")
    with pytest.raises(ValueError):
        load_config(f)

def test_load_config_invalid_values(tmp_path):
    f = tmp_path / "invalid.yaml"
    f.write_text("options:\n  quality: ultra\n")
    with pytest.raises(ValidationError):
        load_config(f)

def test_sample_config_is_valid():
    sample = Path(__file__).resolve().parents[2] / "conf" / "vidforge.yaml"
    config = load_config(sample)
    assert config.general.max_input_bytes == 500 * 1024 * 1024
    assert config.options == ProcessingOptions()
