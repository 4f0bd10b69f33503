import os
import time
import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app
from werkzeug.utils import secure_filename

from errors import ValidationError


BASE36_ALPHABET = string.digits + string.ascii_uppercase
CENTS = Decimal("0.01")


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def random_base36(length: int) -> str:
    return "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))


def generate_stock_id() -> str:
    """STOCK-<base36 millisecond timestamp>-<6 random base36 chars>"""
    timestamp = to_base36(int(time.time() * 1000))
    return f"STOCK-{timestamp}-{random_base36(6)}"


def generate_referral_code() -> str:
    return f"REF-{random_base36(8)}"


def money(value) -> Decimal:
    """Quantize to cents; accepts Decimal, int, float or numeric strings."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(raw) -> Decimal:
    if raw is None or isinstance(raw, bool) or str(raw).strip() == "":
        raise ValidationError("Amount is required")
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation:
        raise ValidationError("Invalid amount format")
    if not amount.is_finite():
        raise ValidationError("Invalid amount format")
    return amount


def clean_text(raw, field, required=False) -> str:
    """Strip a free-text request field; anything but a string or null is rejected."""
    if raw is None:
        value = ""
    elif not isinstance(raw, str):
        raise ValidationError(f"{field} must be a string")
    else:
        value = raw.strip()
    if required and not value:
        raise ValidationError(f"{field} is required")
    return value


def money_out(value) -> float:
    """Serialize a Decimal amount for JSON responses."""
    return float(value) if value is not None else 0.0


def iso(value):
    return value.isoformat() if value else None


#=======================================================================================================
#   UPLOADS
#=======================================================================================================
def upload_dir(kind: str) -> str:
    path = os.path.join(current_app.config["UPLOAD_FOLDER"], kind)
    os.makedirs(path, exist_ok=True)
    return path


def allowed_file(filename: str, allowed_extensions) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in allowed_extensions


def save_upload(file_storage, kind: str, prefix: str, allowed_extensions) -> str:
    """
    Store an uploaded file under UPLOAD_FOLDER/<kind>/ with a generated unique
    name and return the public path (/uploads/<kind>/<filename>).
    """
    if file_storage is None or not file_storage.filename:
        raise ValidationError("File is required")

    safe_name = secure_filename(file_storage.filename)
    if not allowed_file(safe_name, allowed_extensions):
        raise ValidationError("Only image and PDF files are allowed")

    extension = safe_name.rsplit(".", 1)[1].lower()
    unique_suffix = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}"
    filename = f"{prefix}-{unique_suffix}.{extension}"
    file_storage.save(os.path.join(upload_dir(kind), filename))
    return f"/uploads/{kind}/{filename}"
