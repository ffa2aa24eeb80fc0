"""
Tests for image compression and attachment preparation.
"""
import base64

import pytest

from conftest import make_png, open_data_url, png_data_url

from pkg.volunteers.images import (
    MAX_UPLOAD_BYTES,
    ImageCompressionError,
    UploadTooLargeError,
    compress_image_for_storage,
    fit_within,
    get_data_url_size_kb,
    parse_data_url,
    prepare_attachment,
    resize_to_max_dimension,
    to_data_url,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Data URLs
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_parse_data_url():
    mime, raw = parse_data_url(to_data_url(b"hello", "text/plain"))
    assert mime == "text/plain"
    assert raw == b"hello"


def test_parse_rejects_non_data_url():
    with pytest.raises(ImageCompressionError):
        parse_data_url("https://example.com/x.png")


def test_size_kb():
    assert get_data_url_size_kb("x" * 4096) == 3


def test_fit_within():
    assert fit_within(800, 400, 400) == (400, 200)
    assert fit_within(300, 900, 300) == (100, 300)
    assert fit_within(100, 50, 400) == (100, 50)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Compression
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_small_image_returned_unchanged():
    url = png_data_url()
    assert compress_image_for_storage(url) == url


def test_large_image_recompressed_as_jpeg():
    url = png_data_url(width=400, height=400, noise=True)
    result = compress_image_for_storage(url, max_size=50 * 1024)
    assert result.startswith("data:image/jpeg;base64,")
    assert len(result) < len(url)
    img = open_data_url(result)
    assert img.format == "JPEG"
    assert img.width <= 400


def test_transparent_image_flattened():
    url = png_data_url(width=200, height=200, mode="RGBA", color=(0, 0, 0, 0))
    result = compress_image_for_storage(url, max_size=100)
    img = open_data_url(result)
    assert img.mode == "RGB"
    r, g, b = img.convert("RGB").getpixel((img.width // 2, img.height // 2))
    assert min(r, g, b) > 240


def test_undecodable_image_raises():
    bogus = "data:image/png;base64," + base64.b64encode(b"not an image" * 100).decode()
    with pytest.raises(ImageCompressionError):
        compress_image_for_storage(bogus, max_size=10)


def test_resize_to_max_dimension():
    result = resize_to_max_dimension(png_data_url(width=1200, height=600), 300)
    assert open_data_url(result).size == (300, 150)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Attachments
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_image_attachment_downscaled():
    att = prepare_attachment("photo.png", "image/png", make_png(width=1000, height=500))
    assert att.name == "photo.png"
    assert att.type == "image/png"
    assert att.url.startswith("data:image/jpeg")
    assert open_data_url(att.url).size == (400, 200)


def test_non_image_attachment_kept_as_is():
    att = prepare_attachment("notes.txt", "text/plain", b"hello")
    assert att.url == to_data_url(b"hello", "text/plain")


def test_broken_image_attachment_kept():
    att = prepare_attachment("broken.png", "image/png", b"garbage")
    assert att.url == to_data_url(b"garbage", "image/png")


def test_upload_limit():
    with pytest.raises(UploadTooLargeError):
        prepare_attachment("huge.bin", "application/octet-stream", b"x" * (MAX_UPLOAD_BYTES + 1))
