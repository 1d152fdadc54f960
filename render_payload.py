"""
Конвертация ответов рендерера (base64 RGBA буферы) в PNG.
Одиночные снимки и пакеты видов (multi-view) с изоляцией ошибок по каждому виду.
"""

import base64
import binascii
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from png_writer import DEFAULT_COMPRESSION_LEVEL, PNGEncodeError, encode_png


PNG_MIME_TYPE = 'image/png'


class PayloadError(ValueError):
    """Некорректная запись от рендерера (base64, width, height)"""


class ImageTooLargeError(PayloadError):
    """Разрешение превышает допустимое число пикселей"""


def _read_dimension(record: Dict[str, Any], key: str) -> int:
    value = record.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise PayloadError(f"Поле '{key}' должно быть целым числом: {value!r}")
    if value <= 0:
        raise PayloadError(f"Поле '{key}' должно быть больше нуля: {value}")
    return value


def decode_rgba(record: Dict[str, Any],
                max_pixels: Optional[int] = None) -> Tuple[bytes, int, int]:
    """Декодирует base64 RGBA буфер и размеры из записи рендерера"""
    if not isinstance(record, dict):
        raise PayloadError("Запись рендерера должна быть объектом")

    encoded = record.get('base64')
    if not isinstance(encoded, str) or not encoded:
        raise PayloadError("Нет данных изображения в поле 'base64'")

    try:
        # Переносы строк (MIME base64) допустимы, прочие символы - нет
        rgba = base64.b64decode(''.join(encoded.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadError(f"Неверный base64: {e}") from e

    width = _read_dimension(record, 'width')
    height = _read_dimension(record, 'height')
    if max_pixels is not None and width * height > max_pixels:
        raise ImageTooLargeError(
            f"Слишком большое изображение {width}x{height}: больше {max_pixels} пикселей")
    return rgba, width, height


def png_data_url(png: bytes) -> str:
    """Возвращает PNG как data URL"""
    return f'data:{PNG_MIME_TYPE};base64,{base64.b64encode(png).decode("ascii")}'


def convert_view(record: Dict[str, Any], level: int = DEFAULT_COMPRESSION_LEVEL,
                 max_pixels: Optional[int] = None) -> bytes:
    """Конвертирует одну запись рендерера в PNG"""
    rgba, width, height = decode_rgba(record, max_pixels)
    return encode_png(rgba, width, height, level)


def convert_screenshot(response: Dict[str, Any],
                       level: int = DEFAULT_COMPRESSION_LEVEL,
                       max_pixels: Optional[int] = None) -> Dict[str, Any]:
    """
    Конвертирует ответ одиночного рендера (снимок или вид объекта).

    Если рендерер не вернул изображение, ответ отдаётся как есть в 'response'.
    При ошибке конвертации возвращается описание ошибки вместе с исходным
    ответом, а не повреждённые байты.
    """
    if not response.get('success') or not response.get('base64'):
        return {'success': bool(response.get('success')), 'response': response}

    try:
        png = convert_view(response, level, max_pixels)
    except (ValueError, PNGEncodeError) as e:
        return {
            'success': False,
            'error': f'PNG conversion failed: {e}',
            'originalResponse': response,
        }

    result = {
        'success': True,
        'message': response.get('message'),
        'width': response['width'],
        'height': response['height'],
        'format': 'PNG',
        'image': base64.b64encode(png).decode('ascii'),
        'mimeType': PNG_MIME_TYPE,
    }
    for key in ('originalWidth', 'originalHeight', 'viewInfo'):
        if key in response:
            result[key] = response[key]
    return result


class ViewResult(NamedTuple):
    """Результат конвертации одного вида: png или error"""
    index: int
    name: Optional[str]
    png: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.png is not None


class BatchResult(NamedTuple):
    """Результат пакетной конвертации видов"""
    success: bool
    views: List[ViewResult]
    message: Optional[str] = None
    count: Optional[int] = None  # Сколько видов заявил рендерер

    @property
    def images(self) -> List[bytes]:
        return [view.png for view in self.views if view.ok]

    @property
    def failures(self) -> List[ViewResult]:
        return [view for view in self.views if not view.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'message': self.message,
            'viewCount': self.count if self.count is not None else len(self.views),
            'convertedCount': len(self.images),
            'views': [
                png_data_url(view.png) if view.ok else None
                for view in self.views
            ],
            'failures': [
                {'index': view.index, 'name': view.name, 'error': view.error}
                for view in self.failures
            ],
        }


def convert_views(response: Dict[str, Any],
                  level: int = DEFAULT_COMPRESSION_LEVEL,
                  max_pixels: Optional[int] = None) -> BatchResult:
    """
    Конвертирует все виды из ответа multi-view рендера.

    Каждый вид кодируется независимо: ошибка одного вида попадает в его
    ViewResult, остальные продолжают конвертироваться. Пакет успешен, если
    успешен сам ответ рендерера, сколько бы видов ни упало.
    """
    views = response.get('views')
    if not response.get('success') or not isinstance(views, list):
        return BatchResult(success=False, views=[], message=response.get('message'))

    results = []
    for index, view in enumerate(views):
        name = None
        if isinstance(view, dict):
            name = view.get('angle') or view.get('name')
        try:
            png = convert_view(view, level, max_pixels)
        except (ValueError, PNGEncodeError) as e:
            results.append(ViewResult(index, name, error=str(e)))
            continue
        results.append(ViewResult(index, name, png=png))

    return BatchResult(success=True, views=results, message=response.get('message'),
                       count=response.get('count', len(views)))
