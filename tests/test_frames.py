import asyncio
import dataclasses
import io
import subprocess

import pytest
from PIL import Image

from dupecheck import FrameExtractionError, FrameExtractor, ffmpeg_available

from helpers import encode, pattern_image, write_script


def _extractor(settings, binary, **overrides):
    return FrameExtractor(dataclasses.replace(settings, ffmpeg=str(binary), **overrides))


def _leftovers(settings):
    d = settings.temp_dir
    return sorted(p.name for p in d.iterdir()) if d.exists() else []


def test_command_shape(settings, tmp_path):
    cmd = FrameExtractor(settings).build_command(tmp_path / "in.mp4")
    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-i") + 1] == str(tmp_path / "in.mp4")
    assert cmd[cmd.index("-frames:v") + 1] == "1"
    vf = cmd[cmd.index("-vf") + 1]
    assert vf.startswith("thumbnail,scale=320:-2")
    assert "format=rgb24" in vf
    assert cmd[-1] == "pipe:1"


def test_extracts_stdout_and_removes_temp_file(settings, tmp_path):
    frame = encode(pattern_image(1))
    (tmp_path / "frame.png").write_bytes(frame)
    seen = tmp_path / "seen.bin"
    script = write_script(tmp_path / "ffmpeg-ok", f"""
while [ $# -gt 0 ]; do
  if [ "$1" = "-i" ]; then cp "$2" "{seen}"; fi
  shift
done
cat "{tmp_path / 'frame.png'}"
""")
    out = asyncio.run(_extractor(settings, script).extract_frame(b"video-bytes", "MP4"))
    assert out == frame
    assert seen.read_bytes() == b"video-bytes"
    assert _leftovers(settings) == []


def test_nonzero_exit_raises_and_cleans_up(settings, tmp_path):
    script = write_script(tmp_path / "ffmpeg-fail", 'echo "moov atom not found" >&2\nexit 1\n')
    with pytest.raises(FrameExtractionError) as ei:
        asyncio.run(_extractor(settings, script).extract_frame(b"corrupt", "mp4"))
    assert ei.value.returncode == 1
    assert "moov atom" in ei.value.stderr
    assert _leftovers(settings) == []


def test_empty_output_raises(settings, tmp_path):
    script = write_script(tmp_path / "ffmpeg-empty", "exit 0\n")
    with pytest.raises(FrameExtractionError, match="no frame"):
        asyncio.run(_extractor(settings, script).extract_frame(b"x", "webm"))
    assert _leftovers(settings) == []


def test_spawn_failure_raises(settings, tmp_path):
    with pytest.raises(FrameExtractionError, match="failed to spawn"):
        asyncio.run(_extractor(settings, tmp_path / "no-such-ffmpeg").extract_frame(b"x", "mp4"))
    assert _leftovers(settings) == []


def test_timeout_kills_process(settings, tmp_path):
    script = write_script(tmp_path / "ffmpeg-hang", "exec sleep 30\n")
    ex = _extractor(settings, script, ffmpeg_timelimit=0.3)
    with pytest.raises(FrameExtractionError, match="timed out"):
        asyncio.run(ex.extract_frame(b"x", "mp4"))
    assert _leftovers(settings) == []


def test_cancellation_cleans_up(settings, tmp_path):
    script = write_script(tmp_path / "ffmpeg-hang", "exec sleep 30\n")
    ex = _extractor(settings, script)

    async def scenario():
        task = asyncio.create_task(ex.extract_frame(b"x", "mp4"))
        await asyncio.sleep(0.3)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert _leftovers(settings) == []


def test_cancellation_during_temp_write_cleans_up(settings, tmp_path):
    script = write_script(tmp_path / "ffmpeg-ok", "printf frame\n")
    ex = _extractor(settings, script)

    async def scenario():
        for _ in range(5):
            task = asyncio.create_task(ex.extract_frame(b"x" * 50_000_000, "mp4"))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

    asyncio.run(scenario())
    assert _leftovers(settings) == []


def test_concurrency_gate_serializes_calls(settings, tmp_path):
    journal = tmp_path / "journal.txt"
    script = write_script(tmp_path / "ffmpeg-slow", f"""
echo start >> "{journal}"
sleep 0.2
echo end >> "{journal}"
printf frame
""")
    ex = _extractor(settings, script, ffmpeg_concurrency=1)

    async def scenario():
        return await asyncio.gather(*(ex.extract_frame(b"x", "mp4") for _ in range(3)))

    assert asyncio.run(scenario()) == [b"frame"] * 3
    assert journal.read_text().split() == ["start", "end"] * 3
    assert _leftovers(settings) == []


needs_ffmpeg = pytest.mark.skipif(not ffmpeg_available(), reason="ffmpeg not installed")


@pytest.fixture()
def ten_second_clip(tmp_path):
    out = tmp_path / "clip.mp4"
    subprocess.run(
        ["ffmpeg", "-hide_banner", "-loglevel", "error", "-y",
         "-f", "lavfi", "-i", "testsrc=duration=10:size=640x360:rate=10",
         "-pix_fmt", "yuv420p", str(out)],
        check=True,
        capture_output=True,
    )
    return out.read_bytes()


@needs_ffmpeg
def test_real_ffmpeg_extracts_downscaled_png(settings, ten_second_clip):
    ex = FrameExtractor(settings)
    first = asyncio.run(ex.extract_frame(ten_second_clip, "mp4"))
    second = asyncio.run(ex.extract_frame(ten_second_clip, "mp4"))
    assert first == second
    with Image.open(io.BytesIO(first)) as img:
        assert img.format == "PNG"
        assert img.size == (320, 180)
    assert _leftovers(settings) == []


@needs_ffmpeg
def test_real_ffmpeg_rejects_corrupt_video(settings):
    with pytest.raises(FrameExtractionError):
        asyncio.run(FrameExtractor(settings).extract_frame(b"\x00\x00\x00\x18ftypmp42garbage", "mp4"))
    assert _leftovers(settings) == []
