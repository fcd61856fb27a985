import base64
import uuid
from dataclasses import dataclass
from io import BytesIO

import qrcode
from PIL import Image, ImageDraw, ImageFont

from .errors import MalformedCode

DELIMITER = "|"

QR_SIZE = 512
QR_BORDER = 4
LABEL_FONT_SIZE = 20
LABEL_HEIGHT = 40


@dataclass(frozen=True)
class QRCode:
    value: str
    image: str  # PNG data URI


def qr_value(asset_id: str, security_code: str) -> str:
    return f"{asset_id}{DELIMITER}{security_code}"


def asset_label(asset_id: str) -> str:
    # asset names travel hex-encoded; show the readable name when there is one
    try:
        text = bytes.fromhex(asset_id).decode("utf-8")
    except ValueError:
        return asset_id
    return text if text and text.isprintable() else asset_id


def render_qr(value: str, label: str) -> str:
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_H, border=QR_BORDER)
    qr.add_data(value)
    qr.make(fit=True)
    qr.box_size = max(1, QR_SIZE // (qr.modules_count + 2 * QR_BORDER))

    code = qr.make_image(fill_color="black", back_color="white").get_image().convert("RGB")

    canvas = Image.new("RGB", (code.width, code.height + LABEL_HEIGHT), "white")
    canvas.paste(code, (0, 0))

    draw = ImageDraw.Draw(canvas)
    font = ImageFont.load_default(size=LABEL_FONT_SIZE)
    text_width = draw.textlength(label, font=font)
    draw.text(((code.width - text_width) / 2, code.height), label, fill="black", font=font)

    buf = BytesIO()
    canvas.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def encode_qr(asset_id: str, security_code: str) -> QRCode:
    value = qr_value(asset_id, security_code)
    return QRCode(value=value, image=render_qr(value, asset_label(asset_id)))


def decode_qr(value: str) -> tuple[str, str]:
    parts = value.split(DELIMITER)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise MalformedCode("expected <assetId>|<securityCode>")

    asset_id, code = parts
    try:
        code = str(uuid.UUID(code))
    except ValueError:
        raise MalformedCode("security code is not a UUID")
    return asset_id, code
