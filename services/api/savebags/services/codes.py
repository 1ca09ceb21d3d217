"""Pickup codes, order codes and the QR payload that carries them."""

from datetime import datetime, timezone
import secrets
import string

from pydantic import ValidationError as PydanticValidationError

from savebags.schemas.order import QrPayload
from savebags.services.errors import InvalidScan
from savebags.settings import get_settings

CODE_ALPHABET = string.ascii_uppercase + string.digits


def _random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_pickup_code(length: int | None = None) -> str:
    """Short uppercase alphanumeric code the customer shows at pickup."""
    return _random_code(length or get_settings().pickup_code_length)


def generate_order_code(length: int | None = None) -> str:
    return _random_code(length or get_settings().order_code_length)


def normalize_code(code: str) -> str:
    """Codes are matched case-insensitively and ignoring surrounding spaces."""
    return code.strip().upper()


def build_qr_payload(
    *,
    order_id: str,
    merchant_id: str,
    code: str,
    order_code: str,
    timestamp: datetime | None = None,
) -> str:
    """Serialize the QR content. `code` is the pickup code verbatim."""
    ts = timestamp or datetime.now(timezone.utc)
    payload = QrPayload(
        order_id=order_id,
        merchant_id=merchant_id,
        timestamp=int(ts.timestamp() * 1000),
        code=code,
        order_code=order_code,
    )
    return payload.model_dump_json(by_alias=True)


def parse_qr_payload(raw: str) -> QrPayload:
    """Decode a scanned QR string.

    Raises:
        InvalidScan: If the content is not a QR payload issued by this app.
    """
    try:
        return QrPayload.model_validate_json(raw)
    except (PydanticValidationError, ValueError) as e:
        raise InvalidScan("QR code is not a valid pickup code") from e
