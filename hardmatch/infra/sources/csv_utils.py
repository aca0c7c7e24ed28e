from __future__ import annotations

NULL_MARKERS = ("", "null", "$null")


class CsvFormatError(Exception):
    """Выгрузка AD не читается: нет колонок, битый GUID, чужая кодировка."""

    def __init__(self, message: str, line_no: int | None = None):
        super().__init__(message)
        self.line_no = line_no


def parseNull(value: str | None) -> str | None:
    """Ячейка выгрузки Get-ADUser: пустая строка, 'null' и '$null' -> None, иначе strip()."""
    if value is None:
        return None
    trimmed = value.strip()
    if trimmed.lower() in NULL_MARKERS:
        return None
    return trimmed
