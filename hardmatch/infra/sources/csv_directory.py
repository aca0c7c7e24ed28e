from __future__ import annotations

import codecs
import csv
import uuid

from hardmatch.domain.linkage.anchor import parse_consistency_guid
from hardmatch.domain.models import OnPremIdentity
from hardmatch.domain.ports.directory import OnPremDirectoryProtocol
from hardmatch.infra.sources.csv_utils import CsvFormatError, parseNull

COL_GUID = "objectguid"
COL_CONSISTENCY = "ms-ds-consistencyguid"
COL_DISPLAY = "displayname"
COL_LOGIN = "samaccountname"
COL_UPN = "userprincipalname"
COL_DN = "distinguishedname"

REQUIRED_COLUMNS = (COL_GUID, COL_LOGIN)


class CsvOnPremDirectory(OnPremDirectoryProtocol):
    """
    Назначение/ответственность:
        Локальный каталог из CSV-выгрузки Get-ADUser.
    Ограничения:
        - Разделитель ',' или ';' (определяется по заголовку).
        - Имена колонок сравниваются без учёта регистра.
        - Файл читается один раз при первом поиске.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._identities: list[OnPremIdentity] | None = None

    def search(self, term: str, limit: int) -> list[OnPremIdentity]:
        needle = (term or "").strip().lower()
        result: list[OnPremIdentity] = []
        for identity in self.load():
            if needle and not _matches(identity, needle):
                continue
            result.append(identity)
            if len(result) >= limit:
                break
        return result

    def load(self) -> list[OnPremIdentity]:
        if self._identities is None:
            self._identities = list(read_identities(self.path))
        return self._identities


def read_identities(path: str):
    """
    Назначение:
        Построчно читает выгрузку и отдаёт OnPremIdentity.

    Алгоритм:
        Кодировка UTF-8 (с BOM или без) либо UTF-16 с BOM
        (Export-Csv -Encoding Unicode).

    Ошибки/исключения:
        CsvFormatError с номером строки при нарушении формата
        и при файле в другой кодировке.
    """
    encoding = detect_encoding(path)
    try:
        yield from _read_rows(path, encoding)
    except UnicodeDecodeError as exc:
        raise CsvFormatError(f"On-prem CSV is not {encoding}: {exc}") from exc


def detect_encoding(path: str) -> str:
    with open(path, "rb") as f:
        head = f.read(2)
    if head in (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE):
        return "utf-16"
    return "utf-8-sig"


def _read_rows(path: str, encoding: str):
    with open(path, "r", encoding=encoding, newline="") as f:
        header = f.readline()
        if not header.strip():
            raise CsvFormatError("Missing header in on-prem CSV")
        delimiter = ";" if header.count(";") > header.count(",") else ","
        f.seek(0)
        reader = csv.DictReader(f, delimiter=delimiter)
        fieldnames = [name.strip().lower() for name in (reader.fieldnames or [])]
        missing = [name for name in REQUIRED_COLUMNS if name not in fieldnames]
        if missing:
            raise CsvFormatError(f"Missing columns in on-prem CSV: {', '.join(missing)}")
        reader.fieldnames = fieldnames

        for csv_line_no, row in enumerate(reader, start=2):
            if not row:
                continue
            if None in row:
                raise CsvFormatError(f"Invalid column count at line {csv_line_no}", line_no=csv_line_no)
            values = {key: parseNull(value) for key, value in row.items()}
            if not any(values.values()):
                continue
            yield _row_to_identity(values, csv_line_no)


def _row_to_identity(values: dict[str, str | None], line_no: int) -> OnPremIdentity:
    raw_guid = values.get(COL_GUID)
    object_guid = None
    if raw_guid:
        try:
            object_guid = uuid.UUID(raw_guid)
        except ValueError as exc:
            raise CsvFormatError(f"Invalid ObjectGUID at line {line_no}: {raw_guid}", line_no=line_no) from exc
    try:
        consistency = parse_consistency_guid(values.get(COL_CONSISTENCY))
    except ValueError as exc:
        raise CsvFormatError(f"Invalid mS-DS-ConsistencyGuid at line {line_no}: {exc}", line_no=line_no) from exc
    return OnPremIdentity(
        object_guid=object_guid,
        consistency_guid=consistency,
        display_name=values.get(COL_DISPLAY) or "",
        login_name=values.get(COL_LOGIN) or "",
        principal_name=values.get(COL_UPN) or "",
        distinguished_name=values.get(COL_DN),
    )


def _matches(identity: OnPremIdentity, needle: str) -> bool:
    for value in (identity.login_name, identity.principal_name, identity.display_name):
        if value and needle in value.lower():
            return True
    return False
