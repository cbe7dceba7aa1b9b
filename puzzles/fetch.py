"""
Corpus Acquisition

Downloads the Lichess puzzle dump (zstd-compressed CSV) and unpacks it to
the configured corpus path. This is an explicit step; scanning never
downloads anything and only reports a missing corpus.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import requests
import zstandard

from puzzles.config import Settings
from puzzles.errors import CorpusFetchError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1 << 16

# Receives the download percentage (0-100)
FetchProgress = Callable[[float], None]


def ensure_corpus(settings: Settings, on_progress: Optional[FetchProgress] = None) -> Path:
    """
    Return the corpus path, downloading and unpacking it first if absent.

    Raises:
        CorpusFetchError: HTTP, network or decompression failure
    """
    target = Path(settings.corpus_path)
    if target.is_file():
        return target

    target.parent.mkdir(parents=True, exist_ok=True)
    archive = target.with_name(target.name + ".zst.part")
    logger.info("downloading puzzle corpus", extra={"url": settings.corpus_url, "path": str(target)})
    try:
        download(settings.corpus_url, archive, on_progress)
        decompress(archive, target)
    finally:
        archive.unlink(missing_ok=True)

    logger.info("puzzle corpus ready", extra={"path": str(target)})
    return target


def download(url: str, dest: Path, on_progress: Optional[FetchProgress] = None) -> int:
    """Stream ``url`` into ``dest``; returns the number of bytes written."""
    written = 0
    try:
        with requests.get(url, stream=True, timeout=30) as response:
            if response.status_code != 200:
                raise CorpusFetchError(
                    f"download failed: {response.status_code} {response.reason}"
                )
            total = int(response.headers.get("Content-Length") or 0)
            with dest.open("wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    f.write(chunk)
                    written += len(chunk)
                    if on_progress is not None and total:
                        on_progress(min(100.0, written * 100.0 / total))
    except requests.exceptions.Timeout as e:
        raise CorpusFetchError("download timed out") from e
    except requests.exceptions.RequestException as e:
        raise CorpusFetchError(f"download failed: {e}") from e
    except OSError as e:
        raise CorpusFetchError(f"cannot write {dest}: {e}") from e
    return written


def decompress(archive: Path, target: Path) -> None:
    """Unpack a zstd ``archive`` to ``target``; nothing is left behind on failure."""
    partial = target.with_name(target.name + ".part")
    try:
        with archive.open("rb") as src, partial.open("wb") as dst:
            zstandard.ZstdDecompressor().copy_stream(src, dst)
    except (zstandard.ZstdError, OSError) as e:
        partial.unlink(missing_ok=True)
        raise CorpusFetchError(f"cannot decompress {archive}: {e}") from e
    partial.replace(target)
