"""출력용 값 포맷 (pt-BR)."""

from datetime import datetime

BR_DATETIME_FORMAT = "%d/%m/%Y %H:%M:%S"
BR_DATE_FORMAT = "%d/%m/%Y"


def format_datetime_br(value: datetime | None) -> str:
    """datetime → 'dd/mm/yyyy HH:MM:SS' (None이면 빈 문자열)."""
    if value is None:
        return ""
    return value.strftime(BR_DATETIME_FORMAT)


def format_date_br(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime(BR_DATE_FORMAT)
