import pytest
import requests
import zstandard

from conftest import ALL_ROWS, HEADER

from puzzles.config import Settings
from puzzles.errors import CorpusFetchError
from puzzles.fetch import ensure_corpus

CSV_TEXT = "\n".join([HEADER] + ALL_ROWS) + "\n"


class FakeResponse:
    def __init__(self, body=b"", status_code=200, reason="OK"):
        self.body = body
        self.status_code = status_code
        self.reason = reason
        self.headers = {"Content-Length": str(len(body))}

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start:start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture
def fetch_settings(tmp_path):
    return Settings(
        home_dir=tmp_path,
        corpus_path=tmp_path / "data" / "lichess_db_puzzle.csv",
        corpus_url="https://example.invalid/puzzles.csv.zst",
    )


def serve(monkeypatch, response):
    requested = []

    def fake_get(url, **kwargs):
        requested.append(url)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(requests, "get", fake_get)
    return requested


def test_downloads_and_unpacks(monkeypatch, fetch_settings):
    body = zstandard.ZstdCompressor().compress(CSV_TEXT.encode("utf-8"))
    requested = serve(monkeypatch, FakeResponse(body))
    progress = []

    path = ensure_corpus(fetch_settings, on_progress=progress.append)

    assert requested == ["https://example.invalid/puzzles.csv.zst"]
    assert path == fetch_settings.corpus_path
    assert path.read_text(encoding="utf-8") == CSV_TEXT
    assert progress[-1] == pytest.approx(100.0)
    # Only the corpus is left behind
    assert sorted(p.name for p in path.parent.iterdir()) == ["lichess_db_puzzle.csv"]


def test_existing_corpus_is_not_downloaded(monkeypatch, fetch_settings):
    fetch_settings.corpus_path.parent.mkdir(parents=True)
    fetch_settings.corpus_path.write_text(CSV_TEXT)
    requested = serve(monkeypatch, FakeResponse(b""))

    assert ensure_corpus(fetch_settings) == fetch_settings.corpus_path
    assert requested == []


def test_http_error(monkeypatch, fetch_settings):
    serve(monkeypatch, FakeResponse(status_code=404, reason="Not Found"))
    with pytest.raises(CorpusFetchError, match="404"):
        ensure_corpus(fetch_settings)
    assert list(fetch_settings.corpus_path.parent.iterdir()) == []


def test_network_error(monkeypatch, fetch_settings):
    serve(monkeypatch, requests.exceptions.ConnectionError("unreachable"))
    with pytest.raises(CorpusFetchError):
        ensure_corpus(fetch_settings)


def test_timeout(monkeypatch, fetch_settings):
    serve(monkeypatch, requests.exceptions.Timeout())
    with pytest.raises(CorpusFetchError, match="timed out"):
        ensure_corpus(fetch_settings)


def test_corrupt_archive(monkeypatch, fetch_settings):
    serve(monkeypatch, FakeResponse(b"this is not zstd data"))
    with pytest.raises(CorpusFetchError):
        ensure_corpus(fetch_settings)
    assert not fetch_settings.corpus_path.exists()
    assert list(fetch_settings.corpus_path.parent.iterdir()) == []
