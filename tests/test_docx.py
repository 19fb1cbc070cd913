"""DOCX 변환"""

import pytest

from conftest import make_zip

from litmd import ConvertOptions, MalformedDocumentError, StripOption, convert
from litmd.formats.docx_parser import convert_docx

W = 'http://schemas.openxmlformats.org/wordprocessingml/2006/main'
R = 'http://schemas.openxmlformats.org/officeDocument/2006/relationships'

PNG = b'\x89PNG\r\n\x1a\n' + b'\x00' * 16

STYLES = f'''<?xml version="1.0" encoding="UTF-8"?>
<w:styles xmlns:w="{W}">
  <w:style w:type="paragraph" w:styleId="Heading1"><w:name w:val="heading 1"/></w:style>
  <w:style w:type="paragraph" w:styleId="Custom2"><w:name w:val="My Section"/>
    <w:pPr><w:outlineLvl w:val="1"/></w:pPr></w:style>
</w:styles>'''

NUMBERING = f'''<?xml version="1.0" encoding="UTF-8"?>
<w:numbering xmlns:w="{W}">
  <w:abstractNum w:abstractNumId="0"><w:lvl w:ilvl="0"><w:numFmt w:val="bullet"/></w:lvl></w:abstractNum>
  <w:abstractNum w:abstractNumId="1"><w:lvl w:ilvl="0"><w:numFmt w:val="decimal"/></w:lvl></w:abstractNum>
  <w:num w:numId="1"><w:abstractNumId w:val="0"/></w:num>
  <w:num w:numId="2"><w:abstractNumId w:val="1"/></w:num>
</w:numbering>'''

RELS = '''<?xml version="1.0" encoding="UTF-8"?>
<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">
  <Relationship Id="rId1" Type="hyperlink" Target="https://example.com" TargetMode="External"/>
  <Relationship Id="rId2" Type="image" Target="media/image1.png"/>
</Relationships>'''

FOOTNOTES = f'''<?xml version="1.0" encoding="UTF-8"?>
<w:footnotes xmlns:w="{W}">
  <w:footnote w:type="separator" w:id="-1"><w:p><w:r><w:t>---</w:t></w:r></w:p></w:footnote>
  <w:footnote w:id="1"><w:p><w:r><w:t>The note text.</w:t></w:r></w:p></w:footnote>
</w:footnotes>'''

CORE = '''<?xml version="1.0" encoding="UTF-8"?>
<cp:coreProperties xmlns:cp="http://schemas.openxmlformats.org/package/2006/metadata/core-properties"
    xmlns:dc="http://purl.org/dc/elements/1.1/"><dc:title>Quarterly Report</dc:title></cp:coreProperties>'''


def _document(body: str) -> str:
    return (f'<?xml version="1.0" encoding="UTF-8"?>'
            f'<w:document xmlns:w="{W}" xmlns:r="{R}" '
            f'xmlns:wp="http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing" '
            f'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main">'
            f'<w:body>{body}</w:body></w:document>')


def _p(text: str, style: str = '', rpr: str = '', num: str = '') -> str:
    ppr = ''
    if style or num:
        ppr = '<w:pPr>'
        if style:
            ppr += f'<w:pStyle w:val="{style}"/>'
        if num:
            ppr += num
        ppr += '</w:pPr>'
    return f'<w:p>{ppr}<w:r>{rpr}<w:t xml:space="preserve">{text}</w:t></w:r></w:p>'


def _docx(body: str, **extra) -> bytes:
    entries = {'word/document.xml': _document(body),
               'word/styles.xml': STYLES,
               'word/numbering.xml': NUMBERING,
               'word/_rels/document.xml.rels': RELS}
    entries.update(extra)
    return make_zip(entries)


def _num(num_id: str, ilvl: int = 0) -> str:
    return f'<w:numPr><w:ilvl w:val="{ilvl}"/><w:numId w:val="{num_id}"/></w:numPr>'


def test_headings_and_paragraphs():
    body = _p('Main Title', 'Heading1') + _p('Part Two', 'Custom2') + _p('Plain text.')
    markdown, _, _ = convert_docx(_docx(body))
    assert markdown == '# Main Title\n\n## Part Two\n\nPlain text.\n'


def test_inline_formatting():
    body = ('<w:p><w:r><w:t xml:space="preserve">Some </w:t></w:r>'
            '<w:r><w:rPr><w:b/></w:rPr><w:t>bold</w:t></w:r>'
            '<w:r><w:t xml:space="preserve"> and </w:t></w:r>'
            '<w:r><w:rPr><w:i/></w:rPr><w:t>italic</w:t></w:r></w:p>')
    markdown, _, _ = convert_docx(_docx(body))
    assert markdown == 'Some **bold** and _italic_\n'

    plain, _, _ = convert_docx(_docx(body), ConvertOptions(preserve_formatting=False))
    assert plain == 'Some bold and italic\n'


def test_lists():
    body = (_p('Apples', num=_num('1')) + _p('Green ones', num=_num('1', 1))
            + _p('First step', num=_num('2')))
    markdown, _, _ = convert_docx(_docx(body))
    assert markdown == '- Apples\n\n  - Green ones\n\n1. First step\n'


def test_table():
    def cell(text):
        return f'<w:tc>{_p(text)}</w:tc>'
    body = (f'<w:tbl><w:tr>{cell("Name")}{cell("Qty")}</w:tr>'
            f'<w:tr>{cell("a|b")}{cell("2")}</w:tr></w:tbl>')
    markdown, _, _ = convert_docx(_docx(body))
    assert markdown == '| Name | Qty |\n| --- | --- |\n| a\\|b | 2 |\n'


def test_hyperlink():
    body = ('<w:p><w:r><w:t xml:space="preserve">Visit </w:t></w:r>'
            f'<w:hyperlink r:id="rId1"><w:r><w:t>our site</w:t></w:r></w:hyperlink></w:p>')
    markdown, _, _ = convert_docx(_docx(body))
    assert markdown == 'Visit [our site](https://example.com)\n'


def test_footnotes():
    body = ('<w:p><w:r><w:t>Claim</w:t></w:r>'
            '<w:r><w:footnoteReference w:id="1"/></w:r></w:p>')
    data = _docx(body, **{'word/footnotes.xml': FOOTNOTES})
    markdown, _, _ = convert_docx(data)
    assert markdown == 'Claim[^1]\n\n[^1]: The note text.\n'

    stripped, _, _ = convert_docx(data, ConvertOptions(strip={StripOption.FOOTNOTES}))
    assert stripped == 'Claim\n'


def test_image_and_title():
    body = ('<w:p><w:r><w:drawing><wp:inline><wp:docPr id="1" name="Picture" descr="Logo"/>'
            '<a:graphic><a:graphicData><a:blip r:embed="rId2"/></a:graphicData></a:graphic>'
            '</wp:inline></w:drawing></w:r></w:p>')
    data = _docx(body, **{'word/media/image1.png': PNG, 'docProps/core.xml': CORE})
    markdown, images, title = convert_docx(data)
    assert markdown == '![Logo](image_001.png)\n'
    assert len(images) == 1
    assert images[0].data == PNG
    assert title == 'Quarterly Report'

    no_images, images, _ = convert_docx(data, ConvertOptions(extract_images=False))
    assert no_images == ''
    assert images == []


def test_convert_detects_docx():
    result = convert(_docx(_p('Hello docx')))
    assert result.format == 'docx'
    assert result.markdown == 'Hello docx\n'


def test_missing_document_part():
    with pytest.raises(MalformedDocumentError):
        convert_docx(make_zip({'word/styles.xml': STYLES}))


def test_not_a_zip():
    with pytest.raises(MalformedDocumentError):
        convert_docx(b'plain bytes')
