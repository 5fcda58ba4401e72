"""
CSV export of consultation records for clinic staff.
"""

import csv
import io
import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Tuple

# (record field, column title)
CSV_COLUMNS: List[Tuple[str, str]] = [
    ("id", "ID"),
    ("created_at", "Date Created"),
    ("name", "Patient Name"),
    ("preferred_clinic", "Clinic Location"),
    ("has_image", "Image Uploaded?"),
    ("image_analysis", "Image Analysis Results"),
    ("issue_category", "Issue Category"),
    ("issue_specifics", "Nail Specifics"),
    ("symptom_description", "Symptom Description"),
    ("previous_treatment", "Previous Treatments"),
    ("treatment_details", "Treatment Details"),
    ("email", "Email"),
    ("phone", "Phone"),
    ("booking_confirmation", "Booking Confirmation"),
    ("emoji_survey", "Rating"),
    ("additional_help", "Additional Questions"),
    ("status", "Status"),
]


def _cell(field: str, value: Any) -> str:
    if field == "has_image":
        return "Yes" if value else "No"
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y, %H:%M:%S")
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def to_row(record: Mapping[str, Any]) -> Dict[str, str]:
    return {title: _cell(field, record.get(field)) for field, title in CSV_COLUMNS}


def export_consultations(records: Iterable[Mapping[str, Any]]) -> str:
    """Renders records as CSV text with a header row."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=[title for _, title in CSV_COLUMNS])
    writer.writeheader()
    for record in records:
        writer.writerow(to_row(record))
    return buffer.getvalue()


def export_filename(prefix: str = "consultations") -> str:
    timestamp = datetime.utcnow().strftime("%Y-%m-%dT%H-%M-%S")
    return f"{prefix}-{timestamp}.csv"
