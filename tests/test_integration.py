"""
Интеграционные тесты: декодирование результата сторонним PNG декодером (Pillow)
"""
import base64
import io
import random

import pytest
from PIL import Image

from png_writer import PNGWriter, encode_png
from render_payload import convert_views


def decode_png(png: bytes):
    """Декодирует PNG через Pillow и возвращает (размер, RGBA байты)"""
    with Image.open(io.BytesIO(png)) as img:
        assert img.format == 'PNG'
        assert img.mode == 'RGBA'
        return img.size, img.tobytes()


class TestIntegration:
    """Интеграционные тесты с независимым декодером"""

    def test_red_pixel(self):
        """Тест красного пикселя 1x1"""
        size, pixels = decode_png(encode_png(bytes([255, 0, 0, 255]), 1, 1))
        assert size == (1, 1)
        assert pixels == bytes([255, 0, 0, 255])

    @pytest.mark.parametrize('width, height', [(1, 1), (1, 7), (7, 1), (13, 11), (64, 48)])
    def test_lossless_roundtrip(self, width, height):
        """Тест декодирования без потерь"""
        rng = random.Random(width * 1000 + height)
        rgba = bytes(rng.randrange(256) for _ in range(width * height * 4))

        size, pixels = decode_png(encode_png(rgba, width, height))
        assert size == (width, height)
        assert pixels == rgba

    def test_transparent_pixels_survive(self):
        """Тест сохранения прозрачности"""
        rgba = bytes([0, 0, 0, 0, 255, 255, 255, 0, 12, 34, 56, 78, 1, 2, 3, 255])
        assert decode_png(encode_png(rgba, 2, 2))[1] == rgba

    def test_writer_file_opens(self, tmp_path):
        """Тест открытия записанного файла"""
        rgba = bytes([0, 128, 255, 255]) * 12
        path = tmp_path / 'render.png'
        PNGWriter(4, 3, rgba).write(str(path))

        with Image.open(str(path)) as img:
            assert img.size == (4, 3)
            assert img.convert('RGBA').tobytes() == rgba

    def test_multi_view_images_decode(self):
        """Тест декодирования всех видов пакета"""
        views = []
        for angle in ('front', 'iso', 'top'):
            rgba = bytes([len(angle), 0, 0, 255]) * 4
            views.append({
                'angle': angle,
                'base64': base64.b64encode(rgba).decode('ascii'),
                'width': 2,
                'height': 2,
            })
        batch = convert_views({'success': True, 'views': views})

        assert len(batch.images) == 3
        for png, angle in zip(batch.images, ('front', 'iso', 'top')):
            assert decode_png(png)[1] == bytes([len(angle), 0, 0, 255]) * 4
