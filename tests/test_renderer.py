"""Markdown 렌더링과 파이프라인"""

import time

import pytest

from conftest import make_line, make_result

from litmd import ConversionTimeoutError, ConvertOptions, Deadline, StripOption, convert
from litmd.layout.gather import gather_blocks
from litmd.layout.models import BlockType, Word, WordFormat, WordType
from litmd.layout.pipeline import build_stages, run_pipeline
from litmd.layout.renderer import render_markdown, render_words


def _table(*rows, y=100, header=True):
    lines = []
    for index, cells in enumerate(rows):
        lines.append(make_line(' '.join(cells), y=y + 50 * index, is_table_row=True,
                               is_table_header=header and index == 0,
                               table_columns=list(cells)))
    return lines


def _render(*pages, options=None):
    return render_markdown(gather_blocks(make_result(*pages)), options)


@pytest.mark.integration
def test_title_and_body(title_body_pdf):
    result = convert(title_body_pdf)
    assert result.markdown == '# Title\n\nBody text.\n'
    assert result.title == 'Sample Document'
    assert result.page_count == 1
    assert result.format == 'pdf'


@pytest.mark.unit
class TestTables:

    def test_simple_table(self):
        assert _render(_table(['A', 'B'], ['1', '2'])) == '| A | B |\n| --- | --- |\n| 1 | 2 |\n'

    def test_repeated_header_merges_across_pages(self):
        markdown = _render(_table(['A', 'B'], ['1', '2']), _table(['A', 'B'], ['3', '4']))
        assert markdown == '| A | B |\n| --- | --- |\n| 1 | 2 |\n| 3 | 4 |\n'
        assert markdown.count('| --- |') == 1

    def test_headerless_continuation_merges(self):
        markdown = _render(_table(['A', 'B'], ['1', '2']), _table(['3', '4'], header=False))
        assert markdown == '| A | B |\n| --- | --- |\n| 1 | 2 |\n| 3 | 4 |\n'

    def test_different_header_starts_new_table(self):
        markdown = _render(_table(['A', 'B'], ['1', '2']), _table(['X', 'Y'], ['5', '6']))
        assert markdown.count('| --- | --- |') == 2

    def test_paragraph_breaks_merge(self):
        markdown = _render(_table(['A', 'B'], ['1', '2']) + [make_line('Between', y=400)],
                           _table(['3', '4'], header=False))
        assert markdown.count('| --- | --- |') == 2

    def test_pipe_is_escaped(self):
        assert '| a\\|b | c |' in _render(_table(['a|b', 'c'], ['1', '2']))

    def test_short_rows_are_padded(self):
        lines = _table(['A', 'B', 'C'], ['1', '2'])
        assert '| 1 | 2 |  |' in _render(lines)


@pytest.mark.unit
class TestBlocks:

    def test_heading_drops_formatting(self):
        line = make_line('Bold Title', type=BlockType.H2)
        line.words = [Word('Bold', format=WordFormat.BOLD), Word('Title', format=WordFormat.BOLD)]
        assert _render([line]) == '## Bold Title\n'

    def test_list_indentation(self):
        items = [make_line('- one', type=BlockType.LIST),
                 make_line('- nested', y=114, type=BlockType.LIST, list_level=1)]
        assert _render(items) == '- one\n  - nested\n'

    def test_page_separator(self):
        options = ConvertOptions(page_separator='---')
        markdown = _render([make_line('First page')], [make_line('Second page')], options=options)
        assert markdown == 'First page\n\n---\n\nSecond page\n'

    def test_empty_document(self):
        assert _render([]) == ''

    def test_render_is_idempotent(self):
        result = gather_blocks(make_result([make_line('Heading', type=BlockType.H1),
                                            make_line('Text')], _table(['A', 'B'], ['1', '2'])))
        assert render_markdown(result) == render_markdown(result)


@pytest.mark.unit
class TestWords:

    def test_format_runs(self):
        words = [Word('bold', format=WordFormat.BOLD), Word('words', format=WordFormat.BOLD),
                 Word('plain')]
        assert render_words(words) == '**bold words** plain'
        assert render_words(words, formats=False) == 'bold words plain'

    def test_links(self):
        words = [Word('see'), Word('https://example.com', WordType.LINK)]
        assert render_words(words) == 'see [https://example.com](https://example.com)'
        assert render_words(words, formats=False) == 'see https://example.com'

    def test_footnote_reference_attaches(self):
        words = [Word('text'), Word('3', WordType.FOOTNOTE_LINK), Word('.')]
        assert render_words(words) == 'text[^3].'
        assert render_words(words, formats=False) == 'text[^3].'
        assert render_words(words, footnotes=False) == 'text.'

    def test_strip_footnotes_option(self):
        result = make_result([make_line('Body')])
        result.pages[0].lines[0].words.append(Word('1', WordType.FOOTNOTE_LINK))
        result.footnotes['1'] = 'note'
        options = ConvertOptions(strip={StripOption.FOOTNOTES})
        assert render_markdown(gather_blocks(result), options) == 'Body\n'
        assert render_markdown(gather_blocks(result)) == 'Body[^1]\n\n[^1]: note\n'


@pytest.mark.unit
class TestPipeline:

    def test_default_stages(self):
        names = [name for name, _ in build_stages(ConvertOptions())]
        assert names[:2] == ['global-stats', 'compact-lines']
        assert 'remove-repetitive' in names
        assert 'remove-blank-pages' in names
        assert 'strip-toc' not in names
        assert names[-2:] == ['gather-blocks', 'remove-blank-pages']

    def test_disabled_detectors(self):
        options = ConvertOptions(detect_lists=False, detect_headings=False,
                                 strip={StripOption.TOC, StripOption.PAGE_NUMBERS})
        names = [name for name, _ in build_stages(options)]
        assert 'detect-lists' not in names
        assert 'detect-headings' not in names
        assert 'remove-repetitive' not in names
        assert 'strip-toc' in names
        assert 'strip-page-numbers' in names

    def test_expired_deadline(self):
        deadline = Deadline(0.01)
        time.sleep(0.05)
        with pytest.raises(ConversionTimeoutError) as exc_info:
            run_pipeline(make_result([make_line('x')]), deadline=deadline)
        assert exc_info.value.stage == 'global-stats'
