# tests/test_file_utils.py
import numpy as np
import pytest
from PIL import Image

from distil import file_utils
from distil.types import PixelBuffer, UnsupportedFormat


@pytest.fixture
def png_path(tmp_path):
    path = tmp_path / "input.png"
    Image.new("RGB", (10, 10), (255, 0, 0)).save(path)
    return path


def test_load_png(png_path):
    image = file_utils.load_image(png_path)
    assert image.format == "PNG"
    assert image.size == (10, 10)


def test_load_jpeg(tmp_path):
    path = tmp_path / "input.jpg"
    Image.new("RGB", (8, 6), (0, 128, 255)).save(path, "JPEG")
    assert file_utils.load_image(path).format == "JPEG"


def test_gif_is_unsupported(tmp_path):
    path = tmp_path / "input.gif"
    Image.new("P", (4, 4)).save(path, "GIF")
    with pytest.raises(UnsupportedFormat):
        file_utils.load_image(path)


def test_non_image_is_unsupported(tmp_path):
    path = tmp_path / "notes.png"
    path.write_text("definitely not an image")
    with pytest.raises(UnsupportedFormat):
        file_utils.load_image(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        file_utils.load_image(tmp_path / "nope.png")


def test_scale_image_keeps_within_budget():
    image = Image.new("RGB", (400, 100))
    scaled = file_utils.scale_image(image, 1000)

    width, height = scaled.size
    assert width * height <= 1000
    # Aspect ratio is preserved up to rounding
    assert width / height == pytest.approx(4.0, rel=0.1)


def test_scale_image_leaves_small_images_alone():
    image = Image.new("RGB", (20, 20))
    assert file_utils.scale_image(image, 1000) is image


def test_scale_image_handles_thin_images():
    scaled = file_utils.scale_image(Image.new("RGB", (5000, 1)), 1000)
    assert scaled.size[1] == 1
    assert scaled.size[0] * scaled.size[1] <= 1000


def test_image_to_buffer_rgb():
    array = np.zeros((2, 3, 3), dtype=np.uint8)
    array[1, 2] = (1, 2, 3)
    buffer = file_utils.image_to_buffer(Image.fromarray(array, "RGB"))

    assert isinstance(buffer, PixelBuffer)
    assert (buffer.width, buffer.height) == (3, 2)
    assert buffer.pixels.shape == (6, 3)
    # Row-major: last pixel is (row 1, column 2)
    assert tuple(buffer.pixels[-1]) == (1, 2, 3)


def test_image_to_buffer_keeps_alpha():
    buffer = file_utils.image_to_buffer(Image.new("RGBA", (2, 2), (10, 20, 30, 0)))
    assert buffer.pixels.shape == (4, 4)
    assert tuple(buffer.pixels[0]) == (10, 20, 30, 0)


def test_image_to_buffer_palette_transparency():
    image = Image.new("P", (2, 2), 0)
    image.info["transparency"] = 0
    assert file_utils.has_transparency(image)
    assert file_utils.image_to_buffer(image).pixels.shape == (4, 4)


def test_image_to_buffer_greyscale():
    buffer = file_utils.image_to_buffer(Image.new("L", (3, 3), 77))
    assert buffer.pixels.shape == (9, 3)
    assert tuple(buffer.pixels[4]) == (77, 77, 77)


def test_read_pixel_buffer(tmp_path):
    path = tmp_path / "big.png"
    Image.new("RGB", (100, 50), (0, 255, 0)).save(path)

    buffer = file_utils.read_pixel_buffer(path, max_pixels=200)

    assert len(buffer) <= 200
    assert len(buffer) == buffer.width * buffer.height


def test_save_swatch_png_metadata(tmp_path):
    output = tmp_path / "nested" / "palette.png"
    image = Image.new("RGB", (80, 80), (255, 0, 0))

    saved = file_utils.save_swatch_png(
        image,
        output,
        command_line_invocation="distil input.png -o palette.png",
        additional_metadata={"Colors": "3", "merge threshold": "10.0"},
    )

    assert saved == output
    with Image.open(output) as reopened:
        assert reopened.text["distil:command_line"] == "distil input.png -o palette.png"
        assert reopened.text["Software"] == "distil"
        assert reopened.text["distil:Colors"] == "3"
        assert reopened.text["distil:merge_threshold"] == "10.0"
