"""
Single-frame extraction from video uploads via ffmpeg.

The decoder needs a seekable file, so each call spills the upload to a
uniquely named temp file, runs ffmpeg against it and reads the frame from
stdout as PNG. The temp file is removed on every exit path.
"""
from __future__ import annotations

import asyncio
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional

from .config import Settings
from .errors import FrameExtractionError
from .logs import log
from .media import normalize_ext


def ffmpeg_available(binary: Optional[str] = None) -> bool:
    """Return True if an ffmpeg executable is available on PATH (or via FFMPEG env)."""
    cmd = binary or os.environ.get("FFMPEG") or "ffmpeg"
    return shutil.which(cmd) is not None


def _stderr_tail(err: bytes, limit: int = 240) -> str:
    return (err or b"").decode("utf-8", "replace").strip()[-limit:]


class FrameExtractor:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.temp_dir = Path(settings.temp_dir)
        # Global ffmpeg concurrency gate for this extractor
        self._sem = asyncio.Semaphore(settings.ffmpeg_concurrency)

    def _temp_path(self, ext: str) -> Path:
        suffix = normalize_ext(ext) or "bin"
        return self.temp_dir / f"frame-src-{time.time_ns()}-{uuid.uuid4().hex[:8]}.{suffix}"

    def build_command(self, src: Path) -> list[str]:
        s = self.settings
        vf = (
            "thumbnail,"
            f"scale={s.frame_width}:-2:out_color_matrix=bt709:out_range=full,"
            "format=rgb24"
        )
        return [
            s.ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-nostdin",
            "-ss", f"{s.frame_offset:.3f}",
            "-i", str(src),
            "-frames:v", "1",
            "-vf", vf,
            "-f", "image2pipe",
            "-vcodec", "png",
            "pipe:1",
        ]

    async def extract_frame(self, buffer: bytes, ext: str) -> bytes:
        """Return one representative still of ``buffer`` as PNG bytes.

        Raises FrameExtractionError when ffmpeg cannot be spawned, exits
        non-zero, times out or writes nothing to stdout.
        """
        async with self._sem:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            tmp = self._temp_path(ext)
            write = asyncio.ensure_future(asyncio.to_thread(tmp.write_bytes, buffer))
            try:
                try:
                    await asyncio.shield(write)
                except OSError as e:
                    raise FrameExtractionError(f"failed to write temp file: {e}") from e
                return await self._run(tmp)
            finally:
                # The writer thread outlives a cancellation; unlink only once it is done
                if not write.done():
                    await asyncio.wait({write})
                if not write.cancelled():
                    write.exception()
                tmp.unlink(missing_ok=True)

    async def _run(self, src: Path) -> bytes:
        cmd = self.build_command(src)
        tl = self.settings.ffmpeg_timelimit
        log("ffmpeg", "extract start src=%s", src.name)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise FrameExtractionError(f"failed to spawn {cmd[0]}: {e}") from e

        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=tl)
        except asyncio.TimeoutError as e:
            await self._kill(proc)
            raise FrameExtractionError(f"ffmpeg timed out after {tl:g}s") from e
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        err_txt = _stderr_tail(err)
        if err_txt:
            log("ffmpeg", "stderr src=%s rc=%s err=%s", src.name, proc.returncode, err_txt)
        if proc.returncode != 0:
            raise FrameExtractionError(
                f"ffmpeg failed with code {proc.returncode}",
                returncode=proc.returncode,
                stderr=err_txt,
            )
        if not out:
            raise FrameExtractionError("ffmpeg produced no frame", returncode=0, stderr=err_txt)
        log("ffmpeg", "extract end src=%s bytes=%d", src.name, len(out))
        return out

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()
