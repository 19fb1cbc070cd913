"""XLSX 변환"""

import pytest

from conftest import make_zip

from litmd import MalformedDocumentError, convert
from litmd.formats.xlsx_parser import (
    convert_xlsx, excel_date, format_number, is_date_format, parse_cell_ref, parse_xlsx,
)

MAIN = 'http://schemas.openxmlformats.org/spreadsheetml/2006/main'
R = 'http://schemas.openxmlformats.org/officeDocument/2006/relationships'


def _workbook(*names, date1904=False) -> str:
    sheets = ''.join(f'<sheet name="{name}" sheetId="{i}" r:id="rId{i}"/>'
                     for i, name in enumerate(names, start=1))
    pr = '<workbookPr date1904="1"/>' if date1904 else ''
    return f'<workbook xmlns="{MAIN}" xmlns:r="{R}">{pr}<sheets>{sheets}</sheets></workbook>'


def _rels(count: int) -> str:
    rels = ''.join(f'<Relationship Id="rId{i}" Type="worksheet" Target="worksheets/sheet{i}.xml"/>'
                   for i in range(1, count + 1))
    return f'<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">{rels}</Relationships>'


def _sheet(rows: str) -> str:
    return f'<worksheet xmlns="{MAIN}"><sheetData>{rows}</sheetData></worksheet>'


SHARED = (f'<sst xmlns="{MAIN}"><si><t>Item</t></si><si><t>Price</t></si>'
          f'<si><r><t>Rich </t></r><r><t>text</t></r></si></sst>')

STYLES = (f'<styleSheet xmlns="{MAIN}"><numFmts>'
          f'<numFmt numFmtId="164" formatCode="yyyy/mm/dd"/></numFmts>'
          f'<cellXfs><xf numFmtId="0"/><xf numFmtId="14"/><xf numFmtId="164"/></cellXfs>'
          f'</styleSheet>')


def _xlsx(sheets, date1904=False, **extra) -> bytes:
    entries = {
        'xl/workbook.xml': _workbook(*[name for name, _ in sheets], date1904=date1904),
        'xl/_rels/workbook.xml.rels': _rels(len(sheets)),
        'xl/sharedStrings.xml': SHARED,
        'xl/styles.xml': STYLES,
    }
    for index, (_, rows) in enumerate(sheets, start=1):
        entries[f'xl/worksheets/sheet{index}.xml'] = _sheet(rows)
    entries.update(extra)
    return make_zip(entries)


PRICES = ('<row r="1"><c r="A1" t="s"><v>0</v></c><c r="B1" t="s"><v>1</v></c></row>'
          '<row r="2"><c r="A2" t="s"><v>2</v></c><c r="B2"><v>12.50</v></c></row>'
          '<row r="3"><c r="A3" t="inlineStr"><is><t>a|b</t></is></c><c r="B3"><v>3</v></c></row>')


def test_sheet_to_table():
    markdown, title, count = convert_xlsx(_xlsx([('Prices', PRICES)]))
    assert markdown == ('## Prices\n\n'
                        '| Item | Price |\n'
                        '| --- | --- |\n'
                        '| Rich text | 12.5 |\n'
                        '| a\\|b | 3 |\n')
    assert count == 1
    assert title == ''


def test_multiple_sheets_and_empty_sheet():
    markdown, _, count = convert_xlsx(_xlsx([('First', PRICES), ('Empty', '')]))
    assert count == 2
    assert markdown.endswith('## Empty\n')
    assert '## First' in markdown


def test_sparse_cells_are_trimmed():
    rows = '<row r="3"><c r="C3"><v>1</v></c><c r="E3"><v>2</v></c></row><row r="5"><c r="D5"><v>3</v></c></row>'
    sheet = parse_xlsx(_xlsx([('Sparse', rows)])).sheets[0]
    assert sheet.to_rows() == [['1', '', '2'], ['', '3', '']]


def test_dates_booleans_and_errors():
    rows = ('<row r="1"><c r="A1" s="1"><v>45000</v></c><c r="B1" s="2"><v>45000.5</v></c>'
            '<c r="C1" t="b"><v>1</v></c><c r="D1" t="e"><v>#DIV/0!</v></c>'
            '<c r="E1" t="str"><v>formula</v></c></row>')
    sheet = parse_xlsx(_xlsx([('Data', rows)])).sheets[0]
    assert sheet.to_rows() == [['2023-03-15', '2023-03-15 12:00:00', 'TRUE', '#DIV/0!', 'formula']]


def test_date1904():
    rows = '<row r="1"><c r="A1" s="1"><v>0</v></c></row>'
    sheet = parse_xlsx(_xlsx([('Old', rows)], date1904=True)).sheets[0]
    assert sheet.to_rows() == [['1904-01-01']]


def test_title_from_core_properties():
    core = ('<cp:coreProperties xmlns:cp="http://schemas.openxmlformats.org/package/2006/metadata/core-properties" '
            'xmlns:dc="http://purl.org/dc/elements/1.1/"><dc:title>Budget</dc:title></cp:coreProperties>')
    result = convert(_xlsx([('Prices', PRICES)], **{'docProps/core.xml': core}))
    assert result.format == 'xlsx'
    assert result.title == 'Budget'
    assert result.page_count == 1


def test_missing_workbook():
    with pytest.raises(MalformedDocumentError):
        convert_xlsx(make_zip({'xl/sharedStrings.xml': SHARED}))


@pytest.mark.parametrize('ref, expected', [('A1', (1, 1)), ('Z10', (10, 26)), ('AA3', (3, 27)),
                                           ('bad', (0, 0))])
def test_parse_cell_ref(ref, expected):
    assert parse_cell_ref(ref) == expected


def test_number_and_date_helpers():
    assert format_number('3.0') == '3'
    assert format_number('0.25') == '0.25'
    assert format_number('n/a') == 'n/a'
    assert excel_date(1) == '1899-12-31'
    assert is_date_format(14)
    assert is_date_format(164, 'dd/mm/yyyy')
    assert not is_date_format(164, '"day" 0.00')
    assert not is_date_format(2)
