import stat
import sys
import pytest
from pathlib import Path
from vidforge.config.models import AppConfig, GeneralConfig, TimeoutConfig

# Stand-ins for ffmpeg/ffprobe. Behaviour is driven by environment variables
# (inherited by the child) and by substrings of the input file name.
FAKE_FFMPEG = r'''
import os, sys, time

args = sys.argv[1:]
if "-version" in args:
    if os.environ.get("FAKE_FFMPEG_VERSION_HANG"):
        time.sleep(60)
    print("ffmpeg version 6.1-fake")
    sys.exit(int(os.environ.get("FAKE_FFMPEG_VERSION_EXIT", "0")))

if "-maxrate" in args:
    stage = "encode"
elif "-frames:v" in args:
    stage = "thumbnail"
else:
    stage = "preview"

log = os.environ.get("FAKE_FFMPEG_LOG")
if log:
    with open(log, "a") as f:
        f.write(stage + " " + " ".join(args) + "\n")

source = args[args.index("-i") + 1]
out = args[-1]
sys.stderr.write("Input #0, mov,mp4,m4a,3gp,3g2,mj2, from '%s':\n" % source)
sys.stderr.write("  Duration: %s, start: 0.000000, bitrate: 5000 kb/s\n" % os.environ.get("FAKE_FFMPEG_DURATION", "00:00:10.00"))
sys.stderr.flush()

if stage in os.environ.get("FAKE_FFMPEG_HANG", "").split(","):
    with open(out, "wb") as f:
        f.write(b"\0" * 512)
    time.sleep(60)

for t in ("00:00:02.50", "00:00:05.00", "00:00:05.00", "00:00:07.50", "00:00:10.00"):
    sys.stderr.write("frame=   75 fps= 30 q=28.0 size=     256kB time=%s bitrate= 800.0kbits/s speed=2.01x\r" % t)
    sys.stderr.flush()

with open(out, "wb") as f:
    f.write(b"\0" * 2048)

if stage in os.environ.get("FAKE_FFMPEG_FAIL", "").split(",") or (stage == "encode" and "badencode" in source):
    sys.stderr.write("\n[libx264 @ 0x5581] error while encoding\nConversion failed!\n")
    sys.exit(1)

sys.stderr.write("\n")
sys.exit(0)
'''

FAKE_FFPROBE = r'''
import json, os, sys, time

args = sys.argv[1:]
if "-version" in args:
    print("ffprobe version 6.1-fake")
    sys.exit(0)

if os.environ.get("FAKE_FFPROBE_HANG"):
    time.sleep(60)

source = args[-1]
if "corrupt" in os.path.basename(source):
    sys.stderr.write("%s: Invalid data found when processing input\n" % source)
    sys.exit(1)

if os.environ.get("FAKE_FFPROBE_JSON"):
    sys.stdout.write(os.environ["FAKE_FFPROBE_JSON"])
    sys.exit(0)

duration = "3.000000" if "short" in os.path.basename(source) else "10.000000"
data = {
    "streams": [
        {"index": 0, "codec_type": "audio", "codec_name": "aac"},
        {"index": 1, "codec_type": "video", "codec_name": "h264", "width": 1920, "height": 1080,
         "r_frame_rate": "30/1", "avg_frame_rate": "30/1"},
    ],
    "format": {"duration": duration, "bit_rate": "5000000", "size": str(os.path.getsize(source))},
}
sys.stdout.write(json.dumps(data))
'''

def _write_script(path: Path, body: str) -> Path:
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path

@pytest.fixture
def fake_tools(tmp_path):
    """Executable fake ffmpeg/ffprobe; returns (ffmpeg_path, ffprobe_path)."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    ffmpeg = _write_script(bin_dir / "ffmpeg", FAKE_FFMPEG)
    ffprobe = _write_script(bin_dir / "ffprobe", FAKE_FFPROBE)
    return str(ffmpeg), str(ffprobe)

@pytest.fixture
def ffmpeg_log(tmp_path, monkeypatch):
    """Path where the fake ffmpeg records each invocation's arguments."""
    log = tmp_path / "ffmpeg_calls.log"
    monkeypatch.setenv("FAKE_FFMPEG_LOG", str(log))
    return log

@pytest.fixture
def app_config(tmp_path, fake_tools):
    ffmpeg, ffprobe = fake_tools
    return AppConfig(
        general=GeneralConfig(
            work_dir=tmp_path / "work",
            ffmpeg_path=ffmpeg,
            ffprobe_path=ffprobe,
            threads=2,
        ),
        timeouts=TimeoutConfig(kill_grace=2.0),
    )

@pytest.fixture
def make_video(tmp_path):
    """Creates a placeholder input file; the fake tools never decode it."""
    input_dir = tmp_path / "input"
    input_dir.mkdir(exist_ok=True)

    def _make(name: str = "clip.mp4", size: int = 4096) -> Path:
        path = input_dir / name
        path.write_bytes(b"\0" * size)
        return path

    return _make

@pytest.fixture
def probe_json():
    """Default ffprobe payload for a 10s 1080p30 H.264 file."""
    return {
        "streams": [
            {
                "index": 0,
                "codec_name": "h264",
                "codec_type": "video",
                "width": 1920,
                "height": 1080,
                "r_frame_rate": "30/1",
                "avg_frame_rate": "30/1",
            }
        ],
        "format": {"duration": "10.0", "bit_rate": "5000000", "size": "6250000"},
    }

@pytest.fixture
def list_files():
    """Returns every file below a directory, sorted."""
    def _list(root: Path):
        return sorted(p for p in Path(root).rglob("*") if p.is_file()) if Path(root).exists() else []
    return _list
