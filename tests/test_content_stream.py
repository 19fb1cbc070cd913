"""Content Stream 해석: 텍스트 위치, TJ 간격, ToUnicode, XObject"""

import pytest

from pdf_builder import PAGE_HEIGHT, PDFBuilder, build_text_pdf

from litmd.core.content_stream import (
    FontRegistry, extract_page, parse_operations, parse_tounicode_cmap,
)
from litmd.core.document import open_pdf

CMAP = b"""/CIDInit /ProcSet findresource begin
begincmap
1 begincodespacerange
<00> <FF>
endcodespacerange
1 beginbfchar
<01> <0048>
endbfchar
1 beginbfrange
<02> <03> <0069>
endbfrange
endcmap
"""


def _first_page(data: bytes):
    document = open_pdf(data)
    return document, document.pages()[0]


def _items(content: bytes):
    document, page = _first_page(build_text_pdf([], raw_contents=[content]))
    return extract_page(document, page).items


def _custom_page_pdf(content: bytes, resources: str, builder: PDFBuilder = None) -> bytes:
    builder = builder or PDFBuilder()
    stream = builder.add_stream(content)
    pages = builder.reserve()
    page = builder.add(f'<< /Type /Page /Parent {pages} 0 R /MediaBox [0 0 612 {PAGE_HEIGHT}] '
                       f'/Resources {resources} /Contents {stream} 0 R >>')
    builder.set(pages, f'<< /Type /Pages /Kids [{page} 0 R] /Count 1 >>')
    root = builder.add(f'<< /Type /Catalog /Pages {pages} 0 R >>')
    return builder.build(root)


class TestTextPositions:

    def test_item_geometry(self):
        document, page = _first_page(build_text_pdf([[('Hello', 72, 100, 12)]]))
        items = extract_page(document, page).items
        assert len(items) == 1
        item = items[0]
        assert item.text == 'Hello'
        assert item.x == pytest.approx(72)
        assert item.y == pytest.approx(100)
        assert item.height == pytest.approx(12)
        assert item.font_name == 'F1'
        # 폭 정보가 없으면 글리프당 500/1000 em
        assert item.width == pytest.approx(30)

    def test_leading_and_next_line(self):
        items = _items(b'BT /F1 10 Tf 14 TL 50 700 Td (A) Tj T* (B) Tj ET')
        assert [i.text for i in items] == ['A', 'B']
        assert items[0].y == pytest.approx(PAGE_HEIGHT - 700)
        assert items[1].y == pytest.approx(PAGE_HEIGHT - 686)

    def test_ctm_scales_position_and_height(self):
        items = _items(b'q 2 0 0 2 0 0 cm BT /F1 10 Tf 10 300 Td (Big) Tj ET Q')
        assert items[0].x == pytest.approx(20)
        assert items[0].y == pytest.approx(PAGE_HEIGHT - 600)
        assert items[0].height == pytest.approx(20)

    def test_restore_graphics_state(self):
        items = _items(b'q 2 0 0 2 0 0 cm Q BT /F1 10 Tf 1 0 0 1 10 300 Tm (Plain) Tj ET')
        assert items[0].height == pytest.approx(10)

    def test_bad_operands_are_skipped(self):
        items = _items(b'BT /F1 Tf (lost) Td /F1 10 Tf 1 0 0 1 10 300 Tm (Kept) Tj ET')
        assert [i.text for i in items][-1] == 'Kept'


class TestTJSpacing:

    def test_large_adjustment_becomes_space(self):
        items = _items(b'BT /F1 10 Tf 1 0 0 1 50 700 Tm [(Hello) -300 (World)] TJ ET')
        assert items[0].text == 'Hello World'

    def test_kerning_does_not_split_words(self):
        items = _items(b'BT /F1 10 Tf 1 0 0 1 50 700 Tm [(Wo) 50 (rld)] TJ ET')
        assert items[0].text == 'World'

    def test_adjustment_moves_text_matrix(self):
        items = _items(b'BT /F1 10 Tf 1 0 0 1 0 700 Tm [(A) -1000] TJ (B) Tj ET')
        # A (5) + 1000/1000*10
        assert items[1].x == pytest.approx(15)


class TestToUnicode:

    def test_cmap_parsing(self):
        cmap = parse_tounicode_cmap(CMAP)
        assert cmap.mapping[1] == 'H'
        assert cmap.mapping[2] == 'i'
        assert cmap.mapping[3] == 'j'

    def test_range_with_array_and_two_byte_codes(self):
        cmap = parse_tounicode_cmap(b"""begincodespacerange <0000> <FFFF> endcodespacerange
beginbfrange <0010> <0011> [<0041> <00E9>] endbfrange""")
        assert cmap.mapping == {0x10: 'A', 0x11: 'é'}
        assert list(cmap.split_codes(b'\x00\x10\x00\x11')) == [(0x10, 2), (0x11, 2)]

    def test_font_uses_tounicode(self):
        builder = PDFBuilder()
        cmap = builder.add_stream(CMAP)
        font = builder.add(f'<< /Type /Font /Subtype /Type1 /BaseFont /Custom /ToUnicode {cmap} 0 R >>')
        data = _custom_page_pdf(b'BT /F3 12 Tf 1 0 0 1 72 700 Tm <010203> Tj ET',
                                f'<< /Font << /F3 {font} 0 R >> >>', builder)
        document, page = _first_page(data)
        assert extract_page(document, page).items[0].text == 'Hij'


class TestXObjects:

    def test_image_placement(self):
        builder = PDFBuilder()
        image = builder.add_stream(b'\x00\x00\x00',
                                   '/Type /XObject /Subtype /Image /Width 1 /Height 1 '
                                   '/ColorSpace /DeviceRGB /BitsPerComponent 8')
        data = _custom_page_pdf(b'q 100 0 0 50 72 600 cm /Im1 Do Q',
                                f'<< /XObject << /Im1 {image} 0 R >> >>', builder)
        document, page = _first_page(data)
        placement = extract_page(document, page).images[0]
        assert placement.name == 'Im1'
        assert (placement.x, placement.width, placement.height) == pytest.approx((72, 100, 50))
        assert placement.y == pytest.approx(PAGE_HEIGHT - 650)

    def test_form_text_is_extracted(self):
        builder = PDFBuilder()
        font = builder.add('<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>')
        form = builder.add_stream(b'BT /F1 10 Tf 1 0 0 1 0 0 Tm (In form) Tj ET',
                                  f'/Type /XObject /Subtype /Form /BBox [0 0 200 50] '
                                  f'/Matrix [1 0 0 1 100 500] '
                                  f'/Resources << /Font << /F1 {font} 0 R >> >>')
        data = _custom_page_pdf(b'/Fm1 Do', f'<< /XObject << /Fm1 {form} 0 R >> >>', builder)
        document, page = _first_page(data)
        item = extract_page(document, page).items[0]
        assert item.text == 'In form'
        assert (item.x, item.y) == pytest.approx((100, PAGE_HEIGHT - 500))

    def test_self_referencing_form_terminates(self):
        builder = PDFBuilder()
        form = builder.reserve()
        body = b'/Fm1 Do'
        builder.set(form, (f'<< /Type /XObject /Subtype /Form /BBox [0 0 1 1] '
                           f'/Resources << /XObject << /Fm1 {form} 0 R >> >> '
                           f'/Length {len(body)} >>\nstream\n').encode() + body + b'\nendstream',
                    is_stream=True)
        data = _custom_page_pdf(b'/Fm1 Do', f'<< /XObject << /Fm1 {form} 0 R >> >>', builder)
        document, page = _first_page(data)
        assert extract_page(document, page).items == []


class TestFontRegistry:

    def test_same_resource_name_different_fonts(self):
        data = build_text_pdf([[('x', 72, 100, 12)]])
        document, page = _first_page(data)
        registry = FontRegistry(document)
        first = registry.lookup(page.resources, 'F1')
        other = {'Font': {'F1': page.resources['Font']['F2']}}
        second = registry.lookup(other, 'F1')
        assert first.name == 'F1'
        assert second.name.startswith('F1_')
        assert second.base_font == 'Helvetica-Bold'
        assert registry.lookup(page.resources, 'F1') is first

    def test_direct_font_dictionaries_keep_separate_keys(self):
        data = build_text_pdf([[('x', 72, 100, 12)]])
        document, _ = _first_page(data)
        registry = FontRegistry(document)
        plain = {'Font': {'F1': {'Type': 'Font', 'Subtype': 'Type1', 'BaseFont': 'Helvetica'}}}
        mono = {'Font': {'F1': {'Type': 'Font', 'Subtype': 'Type1', 'BaseFont': 'Courier'}}}
        italic = {'Font': {'F1': {'Type': 'Font', 'Subtype': 'Type1', 'BaseFont': 'Times-Italic'}}}
        infos = [registry.lookup(resources, 'F1') for resources in (plain, mono, italic)]
        assert len({info.name for info in infos}) == 3
        assert sorted(info.base_font for info in registry.fonts.values()) == [
            'Courier', 'Helvetica', 'Times-Italic']
        assert registry.lookup(mono, 'F1') is infos[1]


def test_parse_operations_collects_arrays():
    ops = list(parse_operations(b'[(a) -20 (b)] TJ 1 2 Td'))
    assert ops[0][0] == 'TJ'
    assert len(ops[0][1][0]) == 3
    assert ops[1] == ('Td', [1, 2])
