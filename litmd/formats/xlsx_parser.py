"""
XLSX → Markdown

ZIP + XML 기반 OOXML 파싱 (xml.etree.ElementTree)

구조:
    xlsx
    ├── xl/
    │   ├── workbook.xml            # 시트 목록, date1904
    │   ├── _rels/workbook.xml.rels # 시트 r:id → 경로
    │   ├── sharedStrings.xml       # 공유 문자열 (리치 텍스트 포함)
    │   ├── styles.xml              # 숫자 서식 (날짜 판별)
    │   └── worksheets/sheet1.xml
    └── docProps/core.xml           # 제목

시트마다 "## 시트이름" + 파이프 표.
"""

import logging
import posixpath
import re
import zipfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from io import BytesIO
from typing import Dict, List, Optional, Tuple

from ..errors import MalformedDocumentError

logger = logging.getLogger(__name__)

# 네임스페이스
NS = {
    'main': 'http://schemas.openxmlformats.org/spreadsheetml/2006/main',
    'r': 'http://schemas.openxmlformats.org/officeDocument/2006/relationships',
    'rel': 'http://schemas.openxmlformats.org/package/2006/relationships',
    'cp': 'http://schemas.openxmlformats.org/package/2006/metadata/core-properties',
    'dc': 'http://purl.org/dc/elements/1.1/',
}

REQUIRED_ENTRY = 'xl/workbook.xml'

# 날짜 내장 서식 ID
DATE_FORMAT_IDS = frozenset(range(14, 23))


@dataclass
class Cell:
    """셀 데이터 (표시용 문자열)"""
    row: int
    col: int
    value: str


@dataclass
class Sheet:
    """워크시트"""
    name: str
    index: int
    cells: Dict[Tuple[int, int], Cell] = field(default_factory=dict)

    def to_rows(self) -> List[List[str]]:
        """빈 행/열을 잘라낸 2D 리스트"""
        filled = [c for c in self.cells.values() if c.value != '']
        if not filled:
            return []
        rows = sorted({c.row for c in filled})
        cols = sorted({c.col for c in filled})
        return [[self.cells[(r, c)].value if (r, c) in self.cells else '' for c in cols]
                for r in rows]

    def to_markdown(self) -> str:
        """## 이름 + 파이프 표 (첫 번째 비어 있지 않은 행이 머리글)"""
        lines = [f"## {self.name}"]
        data = self.to_rows()
        if data:
            lines.append('')
            for index, row in enumerate(data):
                lines.append('| ' + ' | '.join(sanitize_cell(v) for v in row) + ' |')
                if index == 0:
                    lines.append('| ' + ' | '.join('---' for _ in row) + ' |')
        return '\n'.join(lines)


@dataclass
class XlsxDocument:
    """XLSX 문서"""
    sheets: List[Sheet] = field(default_factory=list)
    title: str = ""

    def to_markdown(self) -> str:
        return '\n\n'.join(sheet.to_markdown() for sheet in self.sheets)


def sanitize_cell(value: str) -> str:
    return value.replace('|', '\\|').replace('\r\n', '<br>').replace('\n', '<br>').strip()


def parse_xlsx(data: bytes) -> XlsxDocument:
    """
    XLSX 바이트 파싱

    Raises:
        MalformedDocumentError: zip 이 아니거나 xl/workbook.xml 이 없음
    """
    try:
        zf = zipfile.ZipFile(BytesIO(data), 'r')
    except zipfile.BadZipFile as e:
        raise MalformedDocumentError("not a valid XLSX archive", original_error=e) from e

    with zf:
        names = set(zf.namelist())
        if REQUIRED_ENTRY not in names:
            raise MalformedDocumentError(f"missing {REQUIRED_ENTRY}")

        doc = XlsxDocument()
        if 'docProps/core.xml' in names:
            doc.title = _parse_title(zf)

        shared_strings = _parse_shared_strings(zf) if 'xl/sharedStrings.xml' in names else []
        date_styles = _parse_date_styles(zf) if 'xl/styles.xml' in names else set()
        sheets, date1904 = _parse_workbook(zf)

        for idx, (name, path) in enumerate(sheets):
            if path not in names:
                logger.warning("sheet %s: missing part %s", name, path)
                continue
            root = _read_xml(zf, path)
            doc.sheets.append(_parse_sheet(root, name, idx, shared_strings, date_styles, date1904))
    return doc


def _read_xml(zf: zipfile.ZipFile, path: str) -> ET.Element:
    try:
        return ET.fromstring(zf.read(path))
    except ET.ParseError as e:
        raise MalformedDocumentError(f"invalid XML in {path}", original_error=e) from e


def _parse_title(zf: zipfile.ZipFile) -> str:
    root = _read_xml(zf, 'docProps/core.xml')
    el = root.find('dc:title', NS)
    return el.text.strip() if el is not None and el.text else ""


def rich_text(el: ET.Element) -> str:
    """<si>/<is> 안의 t 와 r/t 를 이어 붙인 문자열"""
    parts = []
    t = el.find('main:t', NS)
    if t is not None and t.text:
        parts.append(t.text)
    for r in el.findall('main:r', NS):
        t = r.find('main:t', NS)
        if t is not None and t.text:
            parts.append(t.text)
    return ''.join(parts)


def _parse_shared_strings(zf: zipfile.ZipFile) -> List[str]:
    root = _read_xml(zf, 'xl/sharedStrings.xml')
    return [rich_text(si) for si in root.findall('main:si', NS)]


def is_date_format(num_fmt_id: int, format_code: str = "") -> bool:
    """내장 날짜 서식이거나 d/m/y 를 포함하는 사용자 서식"""
    if num_fmt_id in DATE_FORMAT_IDS:
        return True
    if not format_code:
        return False
    # 따옴표 안 문자열, 이스케이프, 색 지정 [Red] 제거
    code = re.sub(r'"[^"]*"|\\.|\[[^\]]*\]', '', format_code.lower())
    return any(ch in code for ch in 'dmy')


def _parse_date_styles(zf: zipfile.ZipFile) -> set:
    """날짜 서식을 쓰는 cellXfs 인덱스 집합"""
    root = _read_xml(zf, 'xl/styles.xml')
    codes = {}
    num_fmts = root.find('main:numFmts', NS)
    if num_fmts is not None:
        for fmt in num_fmts.findall('main:numFmt', NS):
            codes[int(fmt.get('numFmtId', '0'))] = fmt.get('formatCode', '')

    date_styles = set()
    cell_xfs = root.find('main:cellXfs', NS)
    if cell_xfs is not None:
        for index, xf in enumerate(cell_xfs.findall('main:xf', NS)):
            num_fmt_id = int(xf.get('numFmtId', '0'))
            if is_date_format(num_fmt_id, codes.get(num_fmt_id, '')):
                date_styles.add(index)
    return date_styles


def _parse_workbook(zf: zipfile.ZipFile) -> Tuple[List[Tuple[str, str]], bool]:
    """(시트 이름, 파트 경로) 목록과 date1904 플래그"""
    root = _read_xml(zf, REQUIRED_ENTRY)
    pr = root.find('main:workbookPr', NS)
    date1904 = pr is not None and pr.get('date1904', '0') in ('1', 'true')

    targets = {}
    rels_path = 'xl/_rels/workbook.xml.rels'
    if rels_path in zf.namelist():
        for rel in _read_xml(zf, rels_path).findall('rel:Relationship', NS):
            target = rel.get('Target', '')
            if target.startswith('/'):
                target = target[1:]
            else:
                target = posixpath.normpath(posixpath.join('xl', target))
            targets[rel.get('Id')] = target

    sheets = []
    sheets_el = root.find('main:sheets', NS)
    if sheets_el is not None:
        for idx, sheet in enumerate(sheets_el.findall('main:sheet', NS)):
            name = sheet.get('name', f'Sheet{idx + 1}')
            rid = sheet.get(f"{{{NS['r']}}}id")
            sheets.append((name, targets.get(rid, f'xl/worksheets/sheet{idx + 1}.xml')))
    return sheets, date1904


def parse_cell_ref(ref: str) -> Tuple[int, int]:
    """A1 형식 셀 참조 → (행, 열)"""
    m = re.match(r'^([A-Za-z]+)(\d+)$', ref)
    if not m:
        return 0, 0
    col = 0
    for ch in m.group(1).upper():
        col = col * 26 + (ord(ch) - ord('A') + 1)
    return int(m.group(2)), col


def excel_date(serial: float, date1904: bool = False) -> str:
    """일련번호 → ISO 날짜 (시간이 있으면 초까지)"""
    base = datetime(1904, 1, 1) if date1904 else datetime(1899, 12, 30)
    moment = base + timedelta(days=serial)
    if serial != int(serial):
        return moment.replace(microsecond=0).isoformat(sep=' ')
    return moment.date().isoformat()


def format_number(raw: str) -> str:
    """정수면 .0 없이"""
    try:
        value = float(raw)
    except ValueError:
        return raw.strip()
    if value.is_integer():
        return str(int(value))
    return repr(value)


def cell_value(cell_el: ET.Element, shared_strings: List[str], date_styles: set,
               date1904: bool) -> str:
    """셀 하나의 표시 문자열"""
    cell_type = cell_el.get('t', 'n')
    v_el = cell_el.find('main:v', NS)
    raw = v_el.text if v_el is not None and v_el.text is not None else ''

    if cell_type == 's':
        try:
            return shared_strings[int(raw)]
        except (ValueError, IndexError):
            return raw
    if cell_type == 'inlineStr':
        is_el = cell_el.find('main:is', NS)
        return rich_text(is_el) if is_el is not None else ''
    if cell_type == 'b':
        return 'TRUE' if raw.strip() == '1' else 'FALSE'
    if cell_type in ('str', 'e'):
        return raw.strip()
    if not raw:
        return ''
    if int(cell_el.get('s', '0')) in date_styles:
        try:
            return excel_date(float(raw), date1904)
        except (ValueError, OverflowError):
            return raw
    return format_number(raw)


def _parse_sheet(root: ET.Element, name: str, index: int, shared_strings: List[str],
                 date_styles: set, date1904: bool) -> Sheet:
    sheet = Sheet(name=name, index=index)
    sheet_data = root.find('main:sheetData', NS)
    if sheet_data is None:
        return sheet

    for row_pos, row_el in enumerate(sheet_data.findall('main:row', NS), start=1):
        row_num = int(row_el.get('r', row_pos))
        for col_pos, cell_el in enumerate(row_el.findall('main:c', NS), start=1):
            row, col = parse_cell_ref(cell_el.get('r', ''))
            if row == 0:
                row, col = row_num, col_pos
            value = cell_value(cell_el, shared_strings, date_styles, date1904)
            sheet.cells[(row, col)] = Cell(row=row, col=col, value=value)
    return sheet


def convert_xlsx(data: bytes) -> Tuple[str, str, int]:
    """
    XLSX → Markdown

    Returns:
        (markdown, 제목, 시트 수)
    """
    doc = parse_xlsx(data)
    markdown = doc.to_markdown().strip()
    logger.debug("xlsx: %d sheets", len(doc.sheets))
    return (markdown + "\n" if markdown else ""), doc.title, len(doc.sheets)
