"""
DOCX → Markdown (Office Open XML)

DOCX = ZIP 파일 (XML 문서들 포함)

구조:
  word/document.xml            <- 본문 (필수)
  word/styles.xml              <- 스타일 (제목 판별)
  word/numbering.xml           <- 목록 번호 형식
  word/footnotes.xml           <- 각주
  word/_rels/document.xml.rels <- 하이퍼링크, 이미지 경로
  word/media/                  <- 이미지
  docProps/core.xml            <- 제목

문단마다 블록 하나. 표는 파이프 표, 각주는 [^n]: 본문 으로 끝에 붙는다.
"""

import logging
import posixpath
import re
import zipfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, List, Optional, Tuple

from ..core.image_extractor import ImageCollector, detect_image_format
from ..errors import MalformedDocumentError
from ..layout.models import ImageItem, WordFormat
from ..options import ConvertOptions, StripOption

logger = logging.getLogger(__name__)

# OOXML 네임스페이스
NS = {
    'w': 'http://schemas.openxmlformats.org/wordprocessingml/2006/main',
    'r': 'http://schemas.openxmlformats.org/officeDocument/2006/relationships',
    'rel': 'http://schemas.openxmlformats.org/package/2006/relationships',
    'wp': 'http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing',
    'a': 'http://schemas.openxmlformats.org/drawingml/2006/main',
    'pic': 'http://schemas.openxmlformats.org/drawingml/2006/picture',
    'dc': 'http://purl.org/dc/elements/1.1/',
}

REQUIRED_ENTRY = 'word/document.xml'

_W = f"{{{NS['w']}}}"
_R = f"{{{NS['r']}}}"


def _w(name: str) -> str:
    return _W + name


def _val(el: Optional[ET.Element], default: str = '') -> str:
    if el is None:
        return default
    return el.get(_w('val'), default)


def _is_on(el: Optional[ET.Element]) -> bool:
    """<w:b/> 같은 토글 속성 (val=0/false 면 꺼짐)"""
    return el is not None and _val(el, 'true').lower() not in ('0', 'false', 'off')


@dataclass
class DocxContext:
    """변환 중 공유되는 문서 정보"""
    zf: zipfile.ZipFile
    options: ConvertOptions
    collector: ImageCollector
    rels: Dict[str, Tuple[str, str]] = field(default_factory=dict)    # id → (target, mode)
    heading_styles: Dict[str, int] = field(default_factory=dict)       # styleId → 레벨
    list_formats: Dict[Tuple[str, int], str] = field(default_factory=dict)  # (numId, ilvl) → numFmt
    footnote_order: List[str] = field(default_factory=list)


def _read_xml(zf: zipfile.ZipFile, path: str) -> ET.Element:
    try:
        return ET.fromstring(zf.read(path))
    except ET.ParseError as e:
        raise MalformedDocumentError(f"invalid XML in {path}", original_error=e) from e


def _parse_rels(zf: zipfile.ZipFile) -> Dict[str, Tuple[str, str]]:
    path = 'word/_rels/document.xml.rels'
    if path not in zf.namelist():
        return {}
    rels = {}
    for rel in _read_xml(zf, path).findall('rel:Relationship', NS):
        rels[rel.get('Id')] = (rel.get('Target', ''), rel.get('TargetMode', ''))
    return rels


def _parse_styles(zf: zipfile.ZipFile) -> Dict[str, int]:
    """styles.xml - 스타일 ID → 제목 레벨 (outlineLvl, "Heading N", Title)"""
    if 'word/styles.xml' not in zf.namelist():
        return {}
    styles = {}
    for style in _read_xml(zf, 'word/styles.xml').findall('w:style', NS):
        if style.get(_w('type')) != 'paragraph':
            continue
        style_id = style.get(_w('styleId'), '')
        name = _val(style.find('w:name', NS))
        outline = style.find('w:pPr/w:outlineLvl', NS)
        match = re.match(r'heading\s*(\d)', name, re.IGNORECASE)
        if outline is not None and _val(outline).isdigit():
            styles[style_id] = int(_val(outline)) + 1
        elif match:
            styles[style_id] = int(match.group(1))
        elif name.lower() == 'title':
            styles[style_id] = 1
    return {k: v for k, v in styles.items() if 1 <= v <= 6}


def _style_heading_level(style_id: str, styles: Dict[str, int]) -> int:
    if style_id in styles:
        return styles[style_id]
    match = re.match(r'heading\s*(\d)$', style_id, re.IGNORECASE)
    if match and 1 <= int(match.group(1)) <= 6:
        return int(match.group(1))
    return 1 if style_id.lower() == 'title' else 0


def _parse_numbering(zf: zipfile.ZipFile) -> Dict[Tuple[str, int], str]:
    """numbering.xml - (numId, ilvl) → numFmt (bullet, decimal, ...)"""
    if 'word/numbering.xml' not in zf.namelist():
        return {}
    root = _read_xml(zf, 'word/numbering.xml')
    abstract = {}
    for absnum in root.findall('w:abstractNum', NS):
        levels = {}
        for lvl in absnum.findall('w:lvl', NS):
            levels[int(lvl.get(_w('ilvl'), '0'))] = _val(lvl.find('w:numFmt', NS), 'bullet')
        abstract[absnum.get(_w('abstractNumId'))] = levels

    formats = {}
    for num in root.findall('w:num', NS):
        levels = abstract.get(_val(num.find('w:abstractNumId', NS)), {})
        for ilvl, fmt in levels.items():
            formats[(num.get(_w('numId')), ilvl)] = fmt
    return formats


def _inline_text(segments: List[Tuple[str, Optional[WordFormat]]], formats: bool) -> str:
    """(텍스트, 서식) 조각 → 같은 서식끼리 묶어 ** / _ 기호 적용"""
    merged: List[List] = []
    for text, fmt in segments:
        fmt = fmt if formats else None
        if merged and merged[-1][1] is fmt:
            merged[-1][0] += text
        else:
            merged.append([text, fmt])

    out = []
    for text, fmt in merged:
        if fmt is None or not text.strip():
            out.append(text)
            continue
        stripped = text.strip()
        lead = text[:len(text) - len(text.lstrip())]
        trail = text[len(text.rstrip()):]
        out.append(f"{lead}{fmt.start_symbol}{stripped}{fmt.end_symbol}{trail}")
    return ''.join(out)


def _run_format(run: ET.Element) -> Optional[WordFormat]:
    rpr = run.find('w:rPr', NS)
    if rpr is None:
        return None
    bold = _is_on(rpr.find('w:b', NS))
    italic = _is_on(rpr.find('w:i', NS))
    if bold and italic:
        return WordFormat.BOLD_OBLIQUE
    if bold:
        return WordFormat.BOLD
    if italic:
        return WordFormat.OBLIQUE
    return None


def _drawing_markup(drawing: ET.Element, ctx: DocxContext) -> str:
    """이미지 → ![alt](image_001.png) (추출이 꺼져 있으면 빈 문자열)"""
    if not ctx.options.extract_images:
        return ''
    blip = drawing.find('.//a:blip', NS)
    if blip is None:
        return ''
    rel = ctx.rels.get(blip.get(_R + 'embed', ''))
    if rel is None:
        return ''
    path = posixpath.normpath(posixpath.join('word', rel[0]))
    if path not in ctx.zf.namelist():
        logger.warning("docx image %s not found", path)
        return ''
    doc_pr = drawing.find('.//wp:docPr', NS)
    alt = ''
    if doc_pr is not None:
        alt = doc_pr.get('descr') or doc_pr.get('title') or ''
    data = ctx.zf.read(path)
    item = ctx.collector.add(data, detect_image_format(data), path, alt_text=alt)
    return f"![{alt}]({item.filename})"


def _run_segments(run: ET.Element, ctx: DocxContext) -> List[Tuple[str, Optional[WordFormat]]]:
    fmt = _run_format(run)
    segments = []
    for child in run:
        tag = child.tag
        if tag == _w('t'):
            segments.append((child.text or '', fmt))
        elif tag in (_w('tab'), _w('br'), _w('cr')):
            segments.append((' ', None))
        elif tag == _w('footnoteReference'):
            if ctx.options.should_strip(StripOption.FOOTNOTES):
                continue
            footnote_id = child.get(_w('id'), '')
            if footnote_id not in ctx.footnote_order:
                ctx.footnote_order.append(footnote_id)
            segments.append((f"[^{footnote_id}]", None))
        elif tag == _w('drawing'):
            markup = _drawing_markup(child, ctx)
            if markup:
                segments.append((markup, None))
    return segments


def _paragraph_segments(elem: ET.Element, ctx: DocxContext) -> List[Tuple[str, Optional[WordFormat]]]:
    segments = []
    for child in elem:
        if child.tag == _w('r'):
            segments.extend(_run_segments(child, ctx))
        elif child.tag == _w('hyperlink'):
            link_segments = []
            for run in child.findall('.//w:r', NS):
                link_segments.extend(_run_segments(run, ctx))
            text = ''.join(t for t, _ in link_segments).strip()
            rel = ctx.rels.get(child.get(_R + 'id', ''))
            if rel and text:
                segments.append((f"[{text}]({rel[0]})", None))
            else:
                segments.extend(link_segments)
        elif child.tag in (_w('ins'), _w('smartTag'), _w('sdt')):
            inner = child.find('w:sdtContent', NS) if child.tag == _w('sdt') else child
            if inner is not None:
                segments.extend(_paragraph_segments(inner, ctx))
    return segments


def paragraph_to_markdown(elem: ET.Element, ctx: DocxContext) -> str:
    """문단 하나 → Markdown (제목 #, 목록 - / 1.)"""
    ppr = elem.find('w:pPr', NS)
    style_id = _val(ppr.find('w:pStyle', NS)) if ppr is not None else ''
    level = _style_heading_level(style_id, ctx.heading_styles)
    outline = ppr.find('w:outlineLvl', NS) if ppr is not None else None
    if outline is not None and _val(outline).isdigit() and int(_val(outline)) < 6:
        level = int(_val(outline)) + 1

    heading = level > 0
    text = _inline_text(_paragraph_segments(elem, ctx),
                        ctx.options.preserve_formatting and not heading)
    text = re.sub(r'[ \t]+', ' ', text).strip()
    if not text:
        return ''

    if heading:
        return f"{'#' * level} {text}"

    num_pr = ppr.find('w:numPr', NS) if ppr is not None else None
    if num_pr is not None and ctx.options.detect_lists:
        ilvl = int(_val(num_pr.find('w:ilvl', NS), '0') or 0)
        num_id = _val(num_pr.find('w:numId', NS))
        fmt = ctx.list_formats.get((num_id, ilvl), 'bullet')
        marker = '-' if fmt in ('bullet', 'none') else '1.'
        return f"{'  ' * ilvl}{marker} {text}"
    return text


def _cell_text(tc: ET.Element, ctx: DocxContext) -> str:
    parts = [paragraph_to_markdown(p, ctx) for p in tc.findall('w:p', NS)]
    return ' '.join(p for p in parts if p).replace('|', '\\|')


def table_to_markdown(elem: ET.Element, ctx: DocxContext) -> str:
    """표 → 파이프 표 (첫 행 뒤 구분선)"""
    rows = []
    for tr in elem.findall('w:tr', NS):
        row = [_cell_text(tc, ctx) for tc in tr.findall('w:tc', NS)]
        if row:
            rows.append(row)
    if not rows:
        return ''
    width = max(len(r) for r in rows)
    lines = []
    for index, row in enumerate(rows):
        row = row + [''] * (width - len(row))
        lines.append('| ' + ' | '.join(row) + ' |')
        if index == 0:
            lines.append('| ' + ' | '.join(['---'] * width) + ' |')
    return '\n'.join(lines)


def _body_blocks(container: ET.Element, ctx: DocxContext) -> List[str]:
    blocks = []
    for elem in container:
        if elem.tag == _w('p'):
            block = paragraph_to_markdown(elem, ctx)
        elif elem.tag == _w('tbl'):
            block = table_to_markdown(elem, ctx)
        elif elem.tag == _w('sdt'):
            content = elem.find('w:sdtContent', NS)
            blocks.extend(_body_blocks(content, ctx) if content is not None else [])
            continue
        else:
            continue
        if block:
            blocks.append(block)
    return blocks


def _footnote_section(ctx: DocxContext) -> str:
    if not ctx.footnote_order or 'word/footnotes.xml' not in ctx.zf.namelist():
        return ''
    bodies = {}
    for note in _read_xml(ctx.zf, 'word/footnotes.xml').findall('w:footnote', NS):
        if note.get(_w('type')) in ('separator', 'continuationSeparator', 'continuationNotice'):
            continue
        parts = [paragraph_to_markdown(p, ctx) for p in note.findall('w:p', NS)]
        bodies[note.get(_w('id'))] = ' '.join(p for p in parts if p)
    lines = [f"[^{fid}]: {bodies[fid]}" for fid in ctx.footnote_order if fid in bodies]
    return '\n'.join(lines)


def _parse_title(zf: zipfile.ZipFile) -> str:
    if 'docProps/core.xml' not in zf.namelist():
        return ''
    el = _read_xml(zf, 'docProps/core.xml').find('dc:title', NS)
    return el.text.strip() if el is not None and el.text else ''


def convert_docx(data: bytes, options: Optional[ConvertOptions] = None,
                 collector: Optional[ImageCollector] = None) -> Tuple[str, List[ImageItem], str]:
    """
    DOCX 바이트 → Markdown

    Returns:
        (markdown, 이미지 목록, 제목)

    Raises:
        MalformedDocumentError: zip 이 아니거나 word/document.xml 이 없음
    """
    options = options or ConvertOptions()
    collector = collector or ImageCollector()
    try:
        zf = zipfile.ZipFile(BytesIO(data), 'r')
    except zipfile.BadZipFile as e:
        raise MalformedDocumentError("not a valid DOCX archive", original_error=e) from e

    with zf:
        if REQUIRED_ENTRY not in zf.namelist():
            raise MalformedDocumentError(f"missing {REQUIRED_ENTRY}")

        ctx = DocxContext(zf=zf, options=options, collector=collector,
                          rels=_parse_rels(zf),
                          heading_styles=_parse_styles(zf),
                          list_formats=_parse_numbering(zf))
        body = _read_xml(zf, REQUIRED_ENTRY).find('w:body', NS)
        blocks = _body_blocks(body, ctx) if body is not None else []

        footnotes = _footnote_section(ctx)
        if footnotes:
            blocks.append(footnotes)
        title = _parse_title(zf)

    markdown = '\n\n'.join(blocks).strip()
    logger.debug("docx: %d blocks, %d images", len(blocks), len(collector.images))
    return (markdown + '\n' if markdown else ''), collector.images, title
