"""토크나이저, 객체 파서, xref 변형, 증분 업데이트"""

import pytest

from pdf_builder import (
    CLASSIC, MODES, OBJECT_STREAM, XREF_STREAM, PDFBuilder, append_update, build_text_pdf,
)

from litmd.core.document import open_pdf
from litmd.core.objects import ObjectKind, PDFName, PDFRef, PDFStream, kind_of
from litmd.core.parser import ObjectParser, PDFLexer, PDFTokenType, parse_pdf
from litmd.errors import MalformedPDFError


def _tokens(data: bytes):
    lexer = PDFLexer(data)
    tokens = []
    while True:
        token = lexer.read_token()
        if token is None:
            return tokens
        tokens.append(token)


class TestLexer:

    def test_token_types(self):
        tokens = _tokens(b'/Type 12 -3.5 .5 true null obj << >> [ ]')
        assert [t.type for t in tokens] == [
            PDFTokenType.NAME, PDFTokenType.NUMBER, PDFTokenType.NUMBER, PDFTokenType.NUMBER,
            PDFTokenType.BOOL, PDFTokenType.NULL, PDFTokenType.KEYWORD,
            PDFTokenType.DICT_START, PDFTokenType.DICT_END,
            PDFTokenType.ARRAY_START, PDFTokenType.ARRAY_END,
        ]
        assert tokens[1].value == 12
        assert tokens[2].value == -3.5
        assert tokens[3].value == 0.5

    def test_name_hex_escape(self):
        token = _tokens(b'/A#20B')[0]
        assert token.value == 'A B'
        assert isinstance(token.value, PDFName)

    def test_literal_string_escapes(self):
        token = _tokens(rb'(a\(b\) (nested) \101\n)')[0]
        assert token.value == b'a(b) (nested) A\n'

    def test_line_continuation(self):
        assert _tokens(b'(one\\\ntwo)')[0].value == b'onetwo'

    def test_hex_string_odd_length(self):
        assert _tokens(b'<48656C6C6F7>')[0].value == b'Hellop'

    def test_comments_skipped(self):
        tokens = _tokens(b'% comment\n42 % trailing\n')
        assert [t.value for t in tokens] == [42]


class TestObjectParser:

    def test_reference(self):
        value = ObjectParser(b'[1 0 R 2 5 R 7]').parse_value_at(0)
        assert value == [PDFRef(1, 0), PDFRef(2, 5), 7]

    def test_dictionary(self):
        value = ObjectParser(b'<< /Type /Page /Count 3 /Kids [4 0 R] /Flag true >>').parse_value_at(0)
        assert value == {'Type': 'Page', 'Count': 3, 'Kids': [PDFRef(4)], 'Flag': True}
        assert kind_of(value['Type']) is ObjectKind.NAME

    def test_indirect_stream(self):
        data = b'5 0 obj\n<< /Length 5 >>\nstream\nhello\nendstream\nendobj\n'
        num, gen, value = ObjectParser(data).parse_indirect_at(0)
        assert (num, gen) == (5, 0)
        assert isinstance(value, PDFStream)
        assert value.raw == b'hello'

    def test_stream_with_wrong_length_uses_endstream(self):
        data = b'5 0 obj\n<< /Length 99 >>\nstream\nhello\nendstream\nendobj\n'
        _, _, value = ObjectParser(data).parse_indirect_at(0)
        assert value.raw == b'hello'

    def test_missing_header_raises(self):
        with pytest.raises(ValueError):
            ObjectParser(b'not an object').parse_indirect_at(0)

    def test_kind_of_rejects_foreign_values(self):
        with pytest.raises(TypeError):
            kind_of(object())


class TestXRefVariants:

    @pytest.mark.parametrize('mode', MODES)
    def test_text_is_readable_in_every_layout(self, mode):
        data = build_text_pdf([[('Hello', 72, 100, 12)]], mode=mode, title='Layouts')
        document = open_pdf(data)
        assert document.title == 'Layouts'
        assert document.page_count == 1

    def test_object_stream_entries_are_compressed(self):
        document = open_pdf(build_text_pdf([[('Hello', 72, 100, 12)]], mode=OBJECT_STREAM))
        assert any(entry.compressed for entry in document.xref.values())

    def test_oracle_equivalence(self):
        """xref 테이블과 ObjStm 으로 읽은 모든 객체의 값이 같다"""
        pages = [[('First page', 72, 100, 12)], [('Second page', 72, 100, 12)]]
        classic = open_pdf(build_text_pdf(pages, mode=CLASSIC, title='Oracle'))
        packed = open_pdf(build_text_pdf(pages, mode=OBJECT_STREAM, title='Oracle'))

        numbers = [n for n, entry in classic.xref.items() if entry.in_use]
        assert numbers
        for num in numbers:
            expected = classic.materialize(classic.get_object(num))
            assert packed.materialize(packed.get_object(num)) == expected, num

    def test_prev_chain_newest_wins(self):
        builder = PDFBuilder()
        catalog = builder.reserve()
        pages = builder.add('<< /Type /Pages /Kids [] /Count 0 >>')
        builder.set(catalog, f'<< /Type /Catalog /Pages {pages} 0 R >>')
        info = builder.add('<< /Title (Old title) >>')
        data = builder.build(catalog, info=info)

        assert open_pdf(data).title == 'Old title'

        updated = append_update(data, {info: '<< /Title (New title) >>'}, root=catalog, size=info + 1)
        document = open_pdf(updated)
        assert document.title == 'New title'
        assert document.get_object(info) == {'Title': b'New title'}

    def test_prev_chain_keeps_older_objects(self):
        data = build_text_pdf([[('Kept', 72, 100, 12)]], title='Base')
        base = open_pdf(data)
        catalog = base.trailer['Root'].obj_num
        extra = max(base.xref) + 1
        updated = append_update(data, {extra: '(added later)'}, root=catalog, size=extra + 1)
        document = open_pdf(updated)
        assert document.get_object(extra) == b'added later'
        assert document.page_count == 1

    def test_parse_pdf_reads_file(self, tmp_path):
        path = tmp_path / 'doc.pdf'
        path.write_bytes(build_text_pdf([[('File', 72, 100, 12)]], mode=XREF_STREAM))
        assert parse_pdf(str(path)).page_count == 1


class TestRecovery:

    def test_missing_reference_is_none(self):
        document = open_pdf(build_text_pdf([[('x', 72, 100, 12)]]))
        assert document.get_object(999) is None
        assert document.resolve(PDFRef(999)) is None

    def test_wrong_offset_recovered_by_scan(self):
        data = build_text_pdf([[('Scan', 72, 100, 12)]], title='Shifted')
        # 1 번 객체의 xref 항목이 2 번 객체를 가리키게 만든다
        first = data.index(b'1 0 obj')
        second = data.index(b'\n2 0 obj') + 1
        broken = data.replace(b'%010d 00000 n' % first, b'%010d 00000 n' % second, 1)
        assert broken != data

        document = open_pdf(broken)
        assert document.get_object(1)['BaseFont'] == 'Helvetica'
        assert document.page_count == 1

    def test_deep_nesting_resolves_to_none(self):
        deep = '<< /Title ' + '[' * 3000 + ' >>'
        data = build_text_pdf([[('Still readable', 72, 100, 12)]], info_body=deep)
        document = open_pdf(data)
        assert document.info == {}
        assert document.title == ''
        assert document.page_count == 1

    def test_nesting_limit(self):
        parser = ObjectParser(b'[' * (ObjectParser.MAX_NESTING + 1) + b']' * (ObjectParser.MAX_NESTING + 1))
        with pytest.raises(ValueError):
            parser.parse_value_at(0)
        value = ObjectParser(b'[[[1]]] << /A [2] >>').parse_value_at(0)
        assert value == [[[1]]]

    def test_missing_startxref_is_malformed(self):
        with pytest.raises(MalformedPDFError) as exc_info:
            open_pdf(b'%PDF-1.4\n1 0 obj\n<< >>\nendobj\n')
        assert exc_info.value.category == 'malformed'

    def test_trailer_without_root_is_malformed(self):
        data = (b'%PDF-1.4\nxref\n0 1\n0000000000 65535 f \n'
                b'trailer\n<< /Size 1 >>\nstartxref\n9\n%%EOF\n')
        with pytest.raises(MalformedPDFError):
            open_pdf(data)

    def test_reference_cycle_resolves_to_none(self):
        builder = PDFBuilder()
        a = builder.reserve()
        b = builder.reserve()
        builder.set(a, f'{b} 0 R')
        builder.set(b, f'{a} 0 R')
        pages = builder.add('<< /Type /Pages /Kids [] /Count 0 >>')
        root = builder.add(f'<< /Type /Catalog /Pages {pages} 0 R /Loop {a} 0 R >>')
        document = open_pdf(builder.build(root))
        assert document.materialize(document.catalog)['Loop'] is None
