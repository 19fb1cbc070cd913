"""
PDF → Markdown

1. 문서 파싱 + 보안 핸들러
2. 페이지마다 Content Stream 해석 (데드라인 확인)
3. 이미지 수집
4. 레이아웃 파이프라인
5. 렌더링
"""

import logging
from typing import Optional

from ..core.content_stream import FontRegistry, PageContent, TextItem, extract_page
from ..core.document import open_pdf
from ..core.image_extractor import ImageCollector, extract_page_images
from ..errors import UnsupportedFilterError
from ..layout.models import Page, ParseResult
from ..layout.pipeline import run_pipeline
from ..layout.renderer import render_markdown
from ..options import ConvertOptions, Deadline
from . import ConvertResult

logger = logging.getLogger(__name__)


def extract_pages(document, options: ConvertOptions, deadline: Deadline) -> ParseResult:
    """
    모든 페이지의 TextItem 과 이미지 자리 표시 수집

    페이지 하나가 실패하면 경고를 남기고 빈 페이지로 둔다.
    페이지 Content Stream 필터를 풀 수 없으면 파일 전체가 실패한다.
    """
    result = ParseResult()
    fonts = FontRegistry(document)
    collector = ImageCollector()

    for index, pdf_page in enumerate(document.iter_pages()):
        deadline.check(f"page {index + 1}")
        page = Page(index=index, width=pdf_page.width, height=pdf_page.height)
        try:
            content = extract_page(document, pdf_page, fonts)
        except UnsupportedFilterError:
            raise
        except (ValueError, TypeError, KeyError, IndexError) as e:
            message = f"page {index + 1}: content extraction failed: {e}"
            logger.warning(message)
            result.messages.append(message)
            content = PageContent()

        page.items = list(content.items)
        if options.extract_images and content.images:
            for placement, image in extract_page_images(document, content.images, index, collector):
                page.items.append(TextItem(
                    text=f"![{image.alt_text}]({image.filename})",
                    x=placement.x,
                    y=placement.y,
                    width=placement.width,
                    height=placement.height,
                    image_id=image.id,
                ))
        result.pages.append(page)

    result.fonts = {key: info.base_font for key, info in fonts.fonts.items()}
    result.images = collector.images
    return result


def convert_pdf(data: bytes, options: Optional[ConvertOptions] = None,
                deadline: Optional[Deadline] = None) -> ConvertResult:
    """
    PDF 바이트 → ConvertResult

    Raises:
        MalformedPDFError: xref/trailer 를 복구할 수 없음
        UnsupportedEncryptionError: 복호화할 수 없는 암호화
        UnsupportedFilterError: 페이지 Content Stream 필터 미지원
        ConversionTimeoutError: 데드라인 초과
    """
    options = options or ConvertOptions()
    deadline = deadline or Deadline.none()

    document = open_pdf(data, options.password)
    deadline.check('parse')
    result = extract_pages(document, options, deadline)
    page_count = len(result.pages)

    run_pipeline(result, options, deadline)
    deadline.check('render')
    markdown = render_markdown(result, options)

    logger.debug("pdf: %d pages, %d images, %d footnotes",
                 page_count, len(result.images), len(result.footnotes))
    return ConvertResult(
        markdown=markdown,
        images=result.images,
        format='pdf',
        page_count=page_count,
        title=document.title,
        messages=list(result.messages),
    )
