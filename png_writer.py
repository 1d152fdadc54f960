"""
Запись PNG без использования готовых графических библиотек.
Кодирует несжатый RGBA буфер (8 бит на канал) в PNG: сигнатура, IHDR, IDAT, IEND.
"""

import struct
import zlib
from typing import Callable, NamedTuple, Optional, Tuple, Union


PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'
BYTES_PER_PIXEL = 4  # RGBA
DEFAULT_COMPRESSION_LEVEL = 6

CRC_POLYNOMIAL = 0xEDB88320  # Обращённый полином CRC-32

Compressor = Callable[[bytes, int], bytes]


class PNGEncodeError(Exception):
    """Базовая ошибка кодирования PNG"""


class SizeMismatchError(PNGEncodeError, ValueError):
    """Длина буфера не совпадает с width * height * 4"""

    def __init__(self, expected: int, actual: int,
                 width: Optional[int] = None, height: Optional[int] = None):
        self.expected = expected
        self.actual = actual
        self.width = width
        self.height = height
        message = f"Buffer size mismatch: got {actual}, expected {expected}"
        if width is not None and height is not None:
            message += f" for {width}x{height}"
        super().__init__(message)


class CompressionFailure(PNGEncodeError):
    """Ошибка компрессора (исходное исключение доступно в __cause__)"""


def build_crc_table() -> Tuple[int, ...]:
    """Строит таблицу CRC-32 на 256 значений"""
    table = []
    for n in range(256):
        crc = n
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ CRC_POLYNOMIAL
            else:
                crc >>= 1
        table.append(crc)
    return tuple(table)


# Строится один раз при импорте, дальше только читается
CRC_TABLE = build_crc_table()


def crc32(data: bytes) -> int:
    """Вычисляет CRC32 контрольную сумму по таблице"""
    crc = 0xFFFFFFFF
    for byte in data:
        crc = CRC_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return (crc ^ 0xFFFFFFFF) & 0xFFFFFFFF


def crc32_bitwise(data: bytes) -> int:
    """Вычисляет CRC32 побитово, без таблицы (эталон для проверки таблицы)"""
    crc = 0xFFFFFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ CRC_POLYNOMIAL
            else:
                crc >>= 1
    return (crc ^ 0xFFFFFFFF) & 0xFFFFFFFF


def _chunk_type_bytes(chunk_type: Union[bytes, str]) -> bytes:
    if isinstance(chunk_type, str):
        chunk_type = chunk_type.encode('ascii', errors='replace')
    if len(chunk_type) != 4 or not chunk_type.isalpha() or not chunk_type.isascii():
        raise ValueError(f"Тип chunk должен состоять из 4 ASCII букв: {chunk_type!r}")
    return chunk_type


def make_chunk(chunk_type: Union[bytes, str], data: bytes) -> bytes:
    """
    Создаёт PNG chunk: длина (4 байта BE) + тип + данные + CRC32 (4 байта BE).

    CRC считается по типу и данным, длина - только по данным.
    Тип, не состоящий из 4 ASCII букв, - ошибка вызывающего кода (ValueError).
    """
    chunk_type = _chunk_type_bytes(chunk_type)
    chunk_length = struct.pack('>I', len(data))
    chunk = chunk_type + data
    crc_bytes = struct.pack('>I', crc32(chunk))
    return chunk_length + chunk + crc_bytes


def make_ihdr_chunk(width: int, height: int) -> bytes:
    """Создаёт IHDR chunk (заголовок изображения)"""
    data = struct.pack('>II', width, height)  # Ширина и высота (big-endian)
    data += b'\x08'  # Глубина цвета (8 бит)
    data += b'\x06'  # Тип цвета (RGBA)
    data += b'\x00'  # Метод сжатия (deflate)
    data += b'\x00'  # Метод фильтрации
    data += b'\x00'  # Метод чередования (no interlace)

    return make_chunk(b'IHDR', data)


def make_iend_chunk() -> bytes:
    """Создаёт IEND chunk (конец файла)"""
    return make_chunk(b'IEND', b'')


def prepare_scanlines(rgba: bytes, width: int, height: int) -> bytes:
    """Разбивает RGBA буфер на строки и добавляет байт фильтра None (0) перед каждой"""
    row_size = width * BYTES_PER_PIXEL
    image_data = bytearray(height * (row_size + 1))
    view = memoryview(rgba)

    for y in range(height):
        offset = y * (row_size + 1)
        # Фильтр: None (0), байт уже нулевой
        image_data[offset + 1:offset + 1 + row_size] = view[y * row_size:(y + 1) * row_size]

    return bytes(image_data)


def _zlib_compress(data: bytes, level: int) -> bytes:
    return zlib.compress(data, level=level)


def compress(data: bytes, level: int = DEFAULT_COMPRESSION_LEVEL,
             compressor: Optional[Compressor] = None) -> bytes:
    """
    Сжимает подготовленные строки в поток zlib/DEFLATE.

    compressor - любая функция (data, level) -> bytes, по умолчанию zlib.
    Ошибка компрессора пробрасывается как CompressionFailure без повторов.
    """
    if isinstance(level, bool) or not isinstance(level, int) or not 0 <= level <= 9:
        raise ValueError(f"Уровень сжатия должен быть от 0 до 9: {level!r}")

    if compressor is None:
        compressor = _zlib_compress

    try:
        return compressor(data, level)
    except Exception as e:
        raise CompressionFailure(f"Ошибка сжатия: {e}") from e


def _check_dimension(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} должна быть положительным целым числом: {value!r}")
    return value


def encode_png(rgba: bytes, width: int, height: int,
               level: int = DEFAULT_COMPRESSION_LEVEL,
               compressor: Optional[Compressor] = None) -> bytes:
    """
    Кодирует RGBA буфер (построчно, верхняя строка первой) в PNG.

    Длина буфера обязана быть width * height * 4, иначе SizeMismatchError
    до начала кодирования. Результат либо полный, либо исключение.
    """
    width = _check_dimension('Ширина', width)
    height = _check_dimension('Высота', height)

    expected = width * height * BYTES_PER_PIXEL
    if len(rgba) != expected:
        raise SizeMismatchError(expected, len(rgba), width, height)

    idat = make_chunk(b'IDAT', compress(prepare_scanlines(rgba, width, height), level, compressor))

    return b''.join([PNG_SIGNATURE, make_ihdr_chunk(width, height), idat, make_iend_chunk()])


class EncodeResult(NamedTuple):
    """Результат кодирования без исключений: png или error"""
    png: Optional[bytes] = None
    error: Optional[PNGEncodeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def try_encode_png(rgba: bytes, width: int, height: int,
                   level: int = DEFAULT_COMPRESSION_LEVEL,
                   compressor: Optional[Compressor] = None) -> EncodeResult:
    """То же, что encode_png, но ошибки кодирования возвращаются в EncodeResult"""
    try:
        return EncodeResult(png=encode_png(rgba, width, height, level, compressor))
    except PNGEncodeError as e:
        return EncodeResult(error=e)


class PNGWriter:
    """Класс для записи PNG файлов из RGBA буфера"""

    PNG_SIGNATURE = PNG_SIGNATURE

    def __init__(self, width: int, height: int, rgba_data: bytes,
                 level: int = DEFAULT_COMPRESSION_LEVEL):
        self.width = width
        self.height = height
        self.rgba_data = bytes(rgba_data)
        self.level = level

    def create_ihdr_chunk(self) -> bytes:
        """Создаёт IHDR chunk (заголовок изображения)"""
        return make_ihdr_chunk(self.width, self.height)

    def create_idat_chunk(self, image_data: bytes) -> bytes:
        """Создаёт IDAT chunk (данные изображения)"""
        return make_chunk(b'IDAT', compress(image_data, self.level))

    def create_iend_chunk(self) -> bytes:
        """Создаёт IEND chunk (конец файла)"""
        return make_iend_chunk()

    def create_chunk(self, chunk_type: bytes, chunk_data: bytes) -> bytes:
        return make_chunk(chunk_type, chunk_data)

    def crc32(self, data: bytes) -> int:
        return crc32(data)

    def prepare_image_data(self) -> bytes:
        """Подготавливает данные изображения (фильтр None на каждую строку)"""
        return prepare_scanlines(self.rgba_data, self.width, self.height)

    def encode(self) -> bytes:
        """Возвращает PNG целиком в памяти"""
        return encode_png(self.rgba_data, self.width, self.height, self.level)

    def write(self, file_path: str):
        """Записывает PNG файл"""
        # Файл открывается только после успешного кодирования
        png = self.encode()
        with open(file_path, 'wb') as f:
            f.write(png)
