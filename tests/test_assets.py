"""
Tests for contentgraph/assets.py -- AssetResolver and MIME helpers.

Network access is never used: urllib.request.urlopen is patched.
"""

import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from contentgraph.assets import AssetResolver, extension_for, is_url, sniff_mime
from contentgraph.models.base import Outcome


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 24
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 16
SVG_BYTES = b'<?xml version="1.0"?>\n<svg xmlns="http://www.w3.org/2000/svg"></svg>'


def _response(data, content_type=None):
    resp = MagicMock()
    resp.read.return_value = data
    resp.headers = {"Content-Type": content_type} if content_type else {}
    cm = MagicMock()
    cm.__enter__.return_value = resp
    cm.__exit__.return_value = False
    return cm


@pytest.fixture
def resolver(store):
    return AssetResolver(store)


class TestMime:
    """Tests for sniff_mime / extension_for / is_url."""

    def test_magic_bytes(self):
        assert sniff_mime(PNG_BYTES) == "image/png"
        assert sniff_mime(JPEG_BYTES) == "image/jpeg"
        assert sniff_mime(b"GIF89a....") == "image/gif"
        assert sniff_mime(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
        assert sniff_mime(SVG_BYTES) == "image/svg+xml"

    def test_declared_fallback(self):
        assert sniff_mime(b"plain", "image/webp; charset=binary") == "image/webp"
        assert sniff_mime(b"plain") is None

    def test_extensions(self):
        assert extension_for("image/png") == "png"
        assert extension_for("image/svg+xml") == "svg"
        assert extension_for("application/x-unknown") == "jpg"
        assert extension_for(None) == "jpg"

    def test_is_url(self):
        assert is_url("https://example.com/a.png")
        assert not is_url("fixtures/a.png")
        assert not is_url("ftp://example.com/a.png")


class TestLocalAssets:
    """Tests for assets read from the project directory."""

    def test_creates_image(self, resolver, store):
        outcome = resolver.resolve({
            "PopulateFileFrom": "fixtures/placeholder.png",
            "Filename": "hero",
            "Folder": "Placeholder",
        })
        assert outcome.status == Outcome.OK
        image = outcome.entity
        assert image.type_name == "Image"
        assert image.get("Filename") == "Placeholder/hero.png"
        assert image.get("Name") == "hero.png"
        assert image.get("MimeType") == "image/png"
        assert image.get("Size") == len(PNG_BYTES)
        assert image.get("Title") == "hero"
        assert store.asset_path(image.get("StoragePath")).read_bytes() == PNG_BYTES

    def test_content_addressed_path(self, resolver):
        image = resolver.resolve({"PopulateFileFrom": "fixtures/placeholder.png", "Folder": "Placeholder"}).entity
        parts = image.get("StoragePath").split("/")
        assert parts[0] == "Placeholder"
        assert parts[1] == image.get("FileHash")[:10]
        assert parts[2] == "placeholder.png"

    def test_identical_asset_reused(self, resolver, store):
        spec = {"PopulateFileFrom": "fixtures/placeholder.png", "Filename": "hero.png"}
        first = resolver.resolve(spec)
        second = resolver.resolve(spec)
        assert second.entity.id == first.entity.id
        assert len(store.list_entities("Image")) == 1

    def test_filename_sanitized(self, resolver):
        outcome = resolver.resolve({"PopulateFileFrom": "fixtures/placeholder.png", "Filename": "../My Hero!.png"})
        assert outcome.entity.get("Name") == "My-Hero-.png"

    def test_declared_fields_copied(self, resolver):
        outcome = resolver.resolve({
            "PopulateFileFrom": "fixtures/placeholder.png",
            "AltText": "A placeholder",
            "Unknown": "dropped",
        })
        assert outcome.entity.get("AltText") == "A placeholder"
        assert outcome.entity.get("Unknown") is None

    def test_leading_slash_relative_to_base_dir(self, resolver):
        outcome = resolver.resolve({"PopulateFileFrom": "/fixtures/placeholder.png"})
        assert outcome.status == Outcome.OK
        assert outcome.entity.get("Size") == len(PNG_BYTES)

    def test_outside_base_dir_rejected(self, resolver, store, project):
        (project.parent / "secret.png").write_bytes(PNG_BYTES)
        outcome = resolver.resolve({"PopulateFileFrom": "../secret.png"})
        assert outcome.status == Outcome.FAILED
        assert "outside" in outcome.reason
        assert store.list_entities("Image") == []

    def test_missing_file(self, resolver, store):
        outcome = resolver.resolve({"PopulateFileFrom": "fixtures/missing.png"})
        assert outcome.status == Outcome.FAILED
        assert "does not exist" in outcome.reason
        assert store.list_entities("Image") == []

    def test_no_source(self, resolver):
        assert resolver.resolve({"Folder": "x"}).status == Outcome.FAILED

    def test_not_a_mapping(self, resolver):
        assert resolver.resolve("fixtures/placeholder.png").status == Outcome.FAILED

    def test_non_asset_type(self, resolver):
        outcome = resolver.resolve({"PopulateFileFrom": "fixtures/placeholder.png", "ClassName": "Slide"})
        assert outcome.status == Outcome.FAILED


class TestRemoteAssets:
    """Tests for assets downloaded over HTTP."""

    @patch("urllib.request.urlopen")
    def test_download(self, mock_urlopen, resolver):
        mock_urlopen.return_value = _response(JPEG_BYTES, "image/jpeg")
        outcome = resolver.resolve({"PopulateFileFrom": "https://example.com/photos/pic?size=2", "Folder": "Remote"})
        assert outcome.status == Outcome.OK
        assert outcome.entity.get("Name") == "pic.jpg"
        assert outcome.entity.get("MimeType") == "image/jpeg"
        request = mock_urlopen.call_args[0][0]
        assert request.get_header("User-agent") == "contentgraph/1.0"

    @patch("urllib.request.urlopen")
    def test_extension_from_content_type(self, mock_urlopen, resolver):
        mock_urlopen.return_value = _response(b"not magic", "image/webp")
        outcome = resolver.resolve({"PopulateFileFrom": "https://example.com/x", "Filename": "banner"})
        assert outcome.entity.get("Name") == "banner.webp"

    @patch("urllib.request.urlopen")
    def test_unknown_type_defaults_to_jpg(self, mock_urlopen, resolver):
        mock_urlopen.return_value = _response(b"not magic")
        outcome = resolver.resolve({"PopulateFileFrom": "https://example.com/x", "Filename": "banner"})
        assert outcome.entity.get("Name") == "banner.jpg"

    @patch("urllib.request.urlopen")
    def test_http_error(self, mock_urlopen, resolver, store):
        mock_urlopen.side_effect = urllib.error.HTTPError(
            "https://example.com/x.png", 404, "Not Found", hdrs=None, fp=None
        )
        outcome = resolver.resolve({"PopulateFileFrom": "https://example.com/x.png"})
        assert outcome.status == Outcome.FAILED
        assert "404" in outcome.reason
        assert store.list_entities("Image") == []

    @patch("urllib.request.urlopen")
    def test_network_error(self, mock_urlopen, resolver):
        mock_urlopen.side_effect = urllib.error.URLError("connection refused")
        outcome = resolver.resolve({"PopulateFileFrom": "https://example.com/x.png"})
        assert outcome.status == Outcome.FAILED
        assert "connection refused" in outcome.reason

    @patch("urllib.request.urlopen")
    def test_empty_body(self, mock_urlopen, resolver):
        mock_urlopen.return_value = _response(b"")
        outcome = resolver.resolve({"PopulateFileFrom": "https://example.com/x.png"})
        assert outcome.status == Outcome.FAILED
