"""
Flask веб-приложение для конвертации RGBA рендеров в PNG
"""

import io

from flask import Flask, request, jsonify, send_file

from png_writer import DEFAULT_COMPRESSION_LEVEL, PNGEncodeError
from render_payload import (
    ImageTooLargeError,
    convert_screenshot,
    convert_view,
    convert_views,
)

ENV_PREFIX = 'RENDER_PNG'


def configure(config):
    """Значения по умолчанию и переопределение из окружения (RENDER_PNG_*)"""
    config['MAX_CONTENT_LENGTH'] = 64 * 1024 * 1024  # 64MB максимум
    config['PNG_COMPRESSION_LEVEL'] = DEFAULT_COMPRESSION_LEVEL
    config['MAX_PIXELS'] = 4096 * 4096
    # Например RENDER_PNG_MAX_PIXELS=1048576, значения разбираются как JSON
    config.from_prefixed_env(ENV_PREFIX)


app = Flask(__name__)
configure(app.config)


def _read_json():
    """Возвращает JSON объект из тела запроса или None"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def _conversion_options() -> dict:
    return {
        'level': app.config['PNG_COMPRESSION_LEVEL'],
        'max_pixels': app.config['MAX_PIXELS'],
    }


@app.route('/api/convert', methods=['POST'])
def convert_render():
    """Конвертирует одну запись рендерера в PNG файл"""
    record = _read_json()
    if record is None:
        return jsonify({'error': 'Ожидается JSON объект'}), 400

    try:
        png = convert_view(record, **_conversion_options())
    except ImageTooLargeError as e:
        return jsonify({'error': str(e)}), 413
    except (ValueError, PNGEncodeError) as e:
        return jsonify({'error': f'PNG conversion failed: {e}'}), 400
    except Exception as e:
        app.logger.exception("Ошибка конвертации рендера")
        return jsonify({'error': f'Ошибка обработки: {str(e)}'}), 500

    app.logger.info("Конвертирован рендер %sx%s (%d байт PNG)",
                    record['width'], record['height'], len(png))

    return send_file(
        io.BytesIO(png),
        mimetype='image/png',
        as_attachment=True,
        download_name='render.png'
    )


@app.route('/api/preview', methods=['POST'])
def preview_render():
    """Возвращает PNG одиночного рендера в base64 вместе с метаданными"""
    response = _read_json()
    if response is None:
        return jsonify({'error': 'Ожидается JSON объект'}), 400

    try:
        result = convert_screenshot(response, **_conversion_options())
    except Exception as e:
        app.logger.exception("Ошибка превью рендера")
        return jsonify({'error': f'Ошибка обработки: {str(e)}'}), 500

    if 'error' in result:
        app.logger.warning("Ошибка конвертации рендера: %s", result['error'])
        return jsonify(result), 422

    return jsonify(result)


@app.route('/api/render-multi-view', methods=['POST'])
def convert_multi_view():
    """Конвертирует все виды multi-view рендера, пропуская неудачные"""
    response = _read_json()
    if response is None:
        return jsonify({'error': 'Ожидается JSON объект'}), 400

    try:
        batch = convert_views(response, **_conversion_options())
    except Exception as e:
        app.logger.exception("Ошибка конвертации видов")
        return jsonify({'error': f'Ошибка обработки: {str(e)}'}), 500

    if not batch.success:
        return jsonify({'success': False, 'response': response}), 502

    for failure in batch.failures:
        app.logger.warning("Ошибка конвертации вида %d (%s): %s",
                           failure.index, failure.name, failure.error)

    return jsonify(batch.to_dict())


if __name__ == '__main__':
    # Для Docker используем 0.0.0.0, чтобы принимать подключения извне
    app.run(debug=True, host='0.0.0.0', port=5000)
