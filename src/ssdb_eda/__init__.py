"""ssdb-eda — Clean and join a school-shooting workbook into one analysis table."""

__version__ = "0.1.0"

SHEET_ORDER: list[str] = ["incidents", "shooters", "victims", "weapons"]

REQUIRED_COLUMNS: dict[str, list[str]] = {
    "incidents": ["incident_id", "date", "first_shot"],
    "shooters": ["incident_id", "age", "shooter_died"],
    "victims": ["incident_id", "injury"],
    "weapons": ["incident_id", "weapon_type"],
}
