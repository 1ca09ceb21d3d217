import json
import re
from datetime import datetime, timezone

import pytest

from savebags.services.codes import (
    build_qr_payload,
    generate_order_code,
    generate_pickup_code,
    normalize_code,
    parse_qr_payload,
)
from savebags.services.errors import InvalidScan
from savebags.services.geo import haversine_km
from savebags.schemas import Coordinate


def test_pickup_code_is_four_uppercase_alphanumerics():
    for _ in range(50):
        assert re.fullmatch(r"^[A-Z0-9]{4}$", generate_pickup_code())


def test_order_code_default_length():
    assert re.fullmatch(r"^[A-Z0-9]{8}$", generate_order_code())


def test_normalize_code_ignores_case_and_spaces():
    assert normalize_code("  ab1c ") == "AB1C"


def test_qr_payload_carries_pickup_code_verbatim():
    ts = datetime(2024, 5, 1, 20, 0, tzinfo=timezone.utc)
    raw = build_qr_payload(order_id="o1", merchant_id="m1", code="X7K2", order_code="ABCD1234", timestamp=ts)

    data = json.loads(raw)
    assert data == {
        "orderId": "o1",
        "merchantId": "m1",
        "timestamp": int(ts.timestamp() * 1000),
        "code": "X7K2",
        "orderCode": "ABCD1234",
    }
    parsed = parse_qr_payload(raw)
    assert parsed.code == "X7K2"
    assert parsed.order_id == "o1"


@pytest.mark.parametrize("raw", ["", "hello", "{}", '{"orderId": "o1"}', "[1, 2]"])
def test_parse_qr_payload_rejects_foreign_content(raw):
    with pytest.raises(InvalidScan):
        parse_qr_payload(raw)


def test_haversine_same_point_is_zero():
    point = Coordinate(lat=19.4326, lng=-99.1332)
    assert haversine_km(point, point) == 0.0


def test_haversine_known_distance_rounded_to_one_decimal():
    zocalo = Coordinate(lat=19.4326, lng=-99.1332)
    angel = Coordinate(lat=19.4270, lng=-99.1677)
    # ~3.7 km across central Mexico City
    assert haversine_km(zocalo, angel) == pytest.approx(3.7, abs=0.1)
    assert haversine_km(zocalo, angel) == round(haversine_km(zocalo, angel), 1)
