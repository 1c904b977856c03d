import os
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from lendtrack.schemas.device import Device
from lendtrack.services.reporting import CSV_HEADERS, devices_to_csv


def _device(**overrides) -> Device:
    payload = {
        "id": "1",
        "asset_tag": "A00001",
        "model_name": "Pixel 8",
        "os_name": "Android",
        "os_version": "14",
        "manufacturer": "Google",
        "uuid": "PX-1",
        "registered_at": datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
    }
    payload.update(overrides)
    return Device(**payload)


def test_csv_header_matches_export_contract():
    csv_text = devices_to_csv([])

    assert csv_text == ",".join(f'"{h}"' for h in CSV_HEADERS)
    assert CSV_HEADERS[0] == "ID" and CSV_HEADERS[-1] == "Registered At"


def test_available_device_renders_dashes_for_missing_values():
    _, row = devices_to_csv([_device(uuid=None)]).split("\n")

    assert row == (
        '"A00001","Pixel 8","Android","14","Google","-","available","-","-",'
        '"2024-03-01T09:30:00+00:00"'
    )


def test_borrowed_device_includes_holder_and_timestamp():
    device = _device(
        status="in_use",
        current_user_id="42",
        current_user_name="Alice",
        borrowed_at=datetime(2024, 3, 2, 8, 0),
    )

    _, row = devices_to_csv([device]).split("\n")

    assert '"in_use","Alice","2024-03-02T08:00:00+00:00"' in row


def test_embedded_quotes_are_escaped():
    _, row = devices_to_csv([_device(model_name='Tab "S9"')]).split("\n")

    assert '"Tab ""S9"""' in row


def test_falls_back_to_record_id_without_asset_tag():
    _, row = devices_to_csv([_device(asset_tag=None, id=17)]).split("\n")

    assert row.startswith('"17",')
