import base64
from io import BytesIO

import pytest
from PIL import Image

from cropscan.errors import DecodeError, InputError, InvalidFormat, SizeExceeded
from cropscan.services.imaging import ImageUploadOptions, decode_data_url, process_image_upload

from conftest import make_image_bytes, to_data_url


def decoded_image(data_url):
    _, raw = decode_data_url(data_url)
    return Image.open(BytesIO(raw))


def test_small_jpeg_kept_at_original_size():
    content = make_image_bytes(320, 240)
    result = process_image_upload(content, "leaf.jpg", "image/jpeg")

    assert result.data.startswith("data:image/jpeg;base64,")
    assert result.metadata.fileName == "leaf.jpg"
    assert result.metadata.fileSize == len(content)
    assert result.metadata.mimeType == "image/jpeg"
    assert (result.metadata.dimensions.width, result.metadata.dimensions.height) == (320, 240)


def test_large_image_downsampled_preserving_aspect_ratio():
    content = make_image_bytes(4096, 3072)
    result = process_image_upload(content, "field.jpg", "image/jpeg")

    dims = result.metadata.dimensions
    assert dims.width <= 2048 and dims.height <= 2048
    assert dims.width == 2048
    assert dims.height == 1536
    img = decoded_image(result.data)
    assert img.size == (2048, 1536)


def test_tall_image_bounded_by_height():
    content = make_image_bytes(400, 1200, fmt="PNG")
    opts = ImageUploadOptions(max_width=200, max_height=300)
    result = process_image_upload(content, "tall.png", "image/png", opts)

    dims = result.metadata.dimensions
    assert dims.height == 300
    assert dims.width == 100
    assert dims.width * 3 == dims.height


def test_png_with_alpha_keeps_png():
    content = make_image_bytes(50, 50, fmt="PNG", mode="RGBA", color=(10, 200, 10, 128))
    result = process_image_upload(content, "leaf.png", "image/png")
    assert result.data.startswith("data:image/png;base64,")
    assert decoded_image(result.data).format == "PNG"


def test_jpg_alias_is_encoded_as_jpeg():
    content = make_image_bytes(40, 40, fmt="PNG", mode="RGBA", color=(1, 2, 3, 4))
    result = process_image_upload(content, "leaf.jpg", "image/jpg")
    assert result.data.startswith("data:image/jpeg;base64,")
    assert result.metadata.mimeType == "image/jpg"


def test_webp_accepted():
    content = make_image_bytes(30, 20, fmt="WEBP")
    result = process_image_upload(content, "leaf.webp", "image/webp")
    assert result.data.startswith("data:image/webp;base64,")


def test_rejects_unaccepted_mime_type():
    with pytest.raises(InvalidFormat) as exc:
        process_image_upload(make_image_bytes(fmt="GIF", mode="P", color=1), "leaf.gif", "image/gif")
    assert "Accepted formats" in exc.value.error


def test_rejects_oversize_before_decoding():
    opts = ImageUploadOptions(max_size_mb=0.001)
    with pytest.raises(SizeExceeded) as exc:
        process_image_upload(b"x" * 2048, "big.jpg", "image/jpeg", opts)
    assert "exceeds maximum allowed size" in exc.value.error


def test_rejects_undecodable_bytes():
    with pytest.raises(DecodeError):
        process_image_upload(b"definitely not an image", "broken.jpg", "image/jpeg")


def test_rejects_oversized_pixel_count(monkeypatch):
    content = make_image_bytes(100, 100, fmt="PNG")
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    with pytest.raises(DecodeError) as exc:
        process_image_upload(content, "bomb.png", "image/png")
    assert exc.value.error == "Failed to process image"
    assert "exceeds limit" in exc.value.details


def test_intake_errors_are_input_errors():
    assert issubclass(InvalidFormat, InputError)
    assert issubclass(SizeExceeded, InputError)
    assert issubclass(DecodeError, InputError)


class TestDecodeDataUrl:

    def test_roundtrip_payload(self):
        content = make_image_bytes()
        mime, raw = decode_data_url(to_data_url(content))
        assert mime == "image/jpeg"
        assert raw == content

    @pytest.mark.parametrize("value", ["", "hello", "data:text/plain;base64,aGk=", "data:image/png,abc"])
    def test_rejects_non_image_data_urls(self, value):
        with pytest.raises(InputError):
            decode_data_url(value)

    def test_rejects_bad_base64(self):
        with pytest.raises(InputError):
            decode_data_url("data:image/png;base64,@@@")

    def test_rejects_empty_payload(self):
        with pytest.raises(InputError) as exc:
            decode_data_url("data:image/png;base64," + base64.b64encode(b"").decode())
        assert exc.value.error == "Image data is required"
