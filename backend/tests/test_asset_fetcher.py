"""Tests for downloading request assets into a workspace.

Remote hosts are faked with httpx.MockTransport.
"""

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest
from google.api_core.exceptions import NotFound

from src.common.exceptions import DownloadError, NetworkError
from src.common.workspace import create_workspace
from src.videos.asset_fetcher import AssetFetcher, guess_extension
from src.videos.dto.create_video_dto import ImageAsset


def _serve(files, delays=None, calls=None):
    """Return an async handler serving `files` (url -> bytes), 404 otherwise."""
    delays = delays or {}

    async def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        await asyncio.sleep(delays.get(url, 0))
        if url not in files:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, content=files[url])

    return handler


def _fetcher(handler, **kwargs):
    return AssetFetcher(transport=httpx.MockTransport(handler), **kwargs)


class TestGuessExtension:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://cdn.test/a/photo.JPG", ".jpg"),
            ("https://cdn.test/a/photo.webp?token=abc", ".webp"),
            ("https://cdn.test/a/photo", ".png"),
            ("https://cdn.test/render?id=1.5", ".png"),
            ("gs://bucket/music/track.wav", ".wav"),
        ],
    )
    def test_guess(self, url, expected):
        assert guess_extension(url, ".png") == expected


class TestFetch:
    def test_writes_body_to_destination(self, tmp_path):
        fetcher = _fetcher(_serve({"https://cdn.test/a.png": b"PNGDATA"}))
        dest = tmp_path / "img_000.png"

        asyncio.run(fetcher.fetch("https://cdn.test/a.png", dest))

        assert dest.read_bytes() == b"PNGDATA"
        assert not (tmp_path / "img_000.png.part").exists()

    def test_large_body_arrives_intact(self, tmp_path):
        body = bytes(range(256)) * 8192
        fetcher = _fetcher(_serve({"https://cdn.test/big.png": body}))
        dest = tmp_path / "big.png"

        asyncio.run(fetcher.fetch("https://cdn.test/big.png", dest))

        assert dest.read_bytes() == body

    def test_non_success_status_raises_download_error(self, tmp_path):
        fetcher = _fetcher(_serve({}))
        dest = tmp_path / "img_000.png"

        with pytest.raises(DownloadError) as exc_info:
            asyncio.run(fetcher.fetch("https://cdn.test/missing.png", dest))

        assert exc_info.value.url == "https://cdn.test/missing.png"
        assert exc_info.value.remote_status_code == 404
        assert "404" in exc_info.value.message
        assert list(tmp_path.iterdir()) == []

    def test_transport_failure_raises_network_error(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = _fetcher(handler)
        with pytest.raises(NetworkError):
            asyncio.run(fetcher.fetch("https://cdn.test/a.png", tmp_path / "a.png"))
        assert list(tmp_path.iterdir()) == []

    def test_timeout_raises_network_error(self, tmp_path):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = _fetcher(handler)
        with pytest.raises(NetworkError):
            asyncio.run(fetcher.fetch("https://cdn.test/a.png", tmp_path / "a.png"))

    def test_follows_redirects(self, tmp_path):
        def handler(request):
            if request.url.path == "/old.png":
                return httpx.Response(302, headers={"Location": "https://cdn.test/new.png"})
            return httpx.Response(200, content=b"moved")

        fetcher = _fetcher(handler)
        dest = tmp_path / "a.png"
        asyncio.run(fetcher.fetch("https://cdn.test/old.png", dest))
        assert dest.read_bytes() == b"moved"

    @pytest.mark.parametrize("url", ["", "ftp://cdn.test/a.png", "file:///etc/passwd"])
    def test_unsupported_urls(self, tmp_path, url):
        fetcher = _fetcher(_serve({}))
        with pytest.raises(DownloadError):
            asyncio.run(fetcher.fetch(url, tmp_path / "a.png"))


class TestFetchAssets:
    FILES = {
        "https://cdn.test/one.jpg": b"one",
        "https://cdn.test/two": b"two",
        "https://cdn.test/three.png": b"three",
        "https://cdn.test/song.mp3": b"song",
    }

    def _images(self):
        return [
            ImageAsset(url="https://cdn.test/one.jpg", duration=2),
            ImageAsset(url="https://cdn.test/two", duration=3),
            ImageAsset(url="https://cdn.test/three.png", duration=4),
        ]

    def test_sequential_fetch_in_request_order(self, tmp_path):
        calls = []
        fetcher = _fetcher(_serve(self.FILES, calls=calls))
        ws = create_workspace(str(tmp_path))

        assets, audio = asyncio.run(
            fetcher.fetch_assets(self._images(), "https://cdn.test/song.mp3", ws)
        )

        assert calls == [
            "https://cdn.test/one.jpg",
            "https://cdn.test/two",
            "https://cdn.test/three.png",
            "https://cdn.test/song.mp3",
        ]
        assert [a.file_path.name for a in assets] == ["img_000.jpg", "img_001.png", "img_002.png"]
        assert [a.duration for a in assets] == [2, 3, 4]
        assert [a.file_path.read_bytes() for a in assets] == [b"one", b"two", b"three"]
        assert audio == ws.file("audio.mp3")
        assert audio.read_bytes() == b"song"

    def test_concurrent_fetch_keeps_request_order(self, tmp_path):
        # The first image finishes last.
        delays = {
            "https://cdn.test/one.jpg": 0.2,
            "https://cdn.test/two": 0.1,
            "https://cdn.test/three.png": 0.0,
        }
        fetcher = _fetcher(_serve(self.FILES, delays=delays), concurrency=3)
        ws = create_workspace(str(tmp_path))

        assets, _ = asyncio.run(
            fetcher.fetch_assets(self._images(), "https://cdn.test/song.mp3", ws)
        )

        assert [a.file_path.read_bytes() for a in assets] == [b"one", b"two", b"three"]
        assert [a.duration for a in assets] == [2, 3, 4]

    def test_failed_image_stops_before_audio(self, tmp_path):
        calls = []
        files = dict(self.FILES)
        del files["https://cdn.test/two"]
        fetcher = _fetcher(_serve(files, calls=calls))
        ws = create_workspace(str(tmp_path))

        with pytest.raises(DownloadError):
            asyncio.run(fetcher.fetch_assets(self._images(), "https://cdn.test/song.mp3", ws))

        assert "https://cdn.test/three.png" not in calls
        assert "https://cdn.test/song.mp3" not in calls

    def test_concurrent_failure_leaves_no_partial_files(self, tmp_path):
        files = dict(self.FILES)
        del files["https://cdn.test/three.png"]
        delays = {"https://cdn.test/one.jpg": 0.3, "https://cdn.test/two": 0.3}
        fetcher = _fetcher(_serve(files, delays=delays), concurrency=3)
        ws = create_workspace(str(tmp_path))

        with pytest.raises(DownloadError):
            asyncio.run(fetcher.fetch_assets(self._images(), "https://cdn.test/song.mp3", ws))

        assert list(ws.path.iterdir()) == []

    def test_missing_audio_fails(self, tmp_path):
        files = dict(self.FILES)
        del files["https://cdn.test/song.mp3"]
        fetcher = _fetcher(_serve(files))
        ws = create_workspace(str(tmp_path))

        with pytest.raises(DownloadError) as exc_info:
            asyncio.run(fetcher.fetch_assets(self._images(), "https://cdn.test/song.mp3", ws))
        assert exc_info.value.url == "https://cdn.test/song.mp3"


class TestGcsAssets:
    def _gcs_client(self, data):
        client = MagicMock()
        blob = client.bucket.return_value.blob.return_value
        blob.download_to_filename.side_effect = lambda path: Path(path).write_bytes(data)
        return client

    def test_gs_urls_are_refused_by_default(self, tmp_path):
        fetcher = _fetcher(_serve({}))
        fetcher._storage_client = self._gcs_client(b"private")
        ws = create_workspace(str(tmp_path))

        with pytest.raises(DownloadError) as exc_info:
            asyncio.run(
                fetcher.fetch_assets(
                    [ImageAsset(url="gs://private-bucket/a.png", duration=1)],
                    "gs://private-bucket/secret.wav",
                    ws,
                )
            )

        assert "disabled" in exc_info.value.message
        fetcher._storage_client.bucket.assert_not_called()
        assert list(ws.path.iterdir()) == []

    def test_gs_urls_read_when_enabled(self, tmp_path):
        fetcher = _fetcher(_serve({}), allow_gcs=True)
        fetcher._storage_client = self._gcs_client(b"track")
        dest = tmp_path / "audio.wav"

        asyncio.run(fetcher.fetch("gs://media/music/track.wav", dest))

        fetcher._storage_client.bucket.assert_called_with("media")
        fetcher._storage_client.bucket.return_value.blob.assert_called_with("music/track.wav")
        assert dest.read_bytes() == b"track"
        assert not (tmp_path / "audio.wav.part").exists()

    def test_missing_gcs_object(self, tmp_path):
        fetcher = _fetcher(_serve({}), allow_gcs=True)
        client = MagicMock()
        client.bucket.return_value.blob.return_value.download_to_filename.side_effect = (
            NotFound("no such object")
        )
        fetcher._storage_client = client

        with pytest.raises(DownloadError) as exc_info:
            asyncio.run(fetcher.fetch("gs://media/missing.wav", tmp_path / "a.wav"))
        assert exc_info.value.remote_status_code == 404
