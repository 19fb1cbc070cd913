"""
변환 결과 출력

- JSON: 메타데이터 + markdown + 이미지 정보 (바이트 제외)
- 파일: <이름>.md + <이름>_images/ 디렉터리
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Union

from .formats import ConvertResult

logger = logging.getLogger(__name__)

_IMAGE_LINK = re.compile(r'!\[([^\]]*)\]\(([^)\s]+)\)')


def to_dict(result: ConvertResult) -> Dict:
    """ConvertResult 를 JSON 직렬화 가능한 딕셔너리로"""
    return {
        'metadata': {
            'filename': result.filename,
            'format': result.format,
            'page_count': result.page_count,
            'title': result.title,
        },
        'content': {
            'markdown': result.markdown,
        },
        'images': [
            {
                'id': image.id,
                'filename': image.filename,
                'format': image.format,
                'source': image.source_path,
                'alt': image.alt_text,
                'page': image.page_index + 1,
                'width': image.width,
                'height': image.height,
                'size': len(image.data),
            }
            for image in result.images
        ],
        'messages': list(result.messages),
    }


def to_json(result: ConvertResult, indent: int = 2) -> str:
    """
    ConvertResult 를 JSON 으로 변환

    Args:
        result: convert() 결과
        indent: JSON 들여쓰기

    Returns:
        str: JSON 문자열
    """
    return json.dumps(to_dict(result), ensure_ascii=False, indent=indent)


def image_dir_for(output_path: Path) -> Path:
    return output_path.with_name(f"{output_path.stem}_images")


def rewrite_image_links(markdown: str, prefix: str, names) -> str:
    """![alt](image_001.png) → ![alt](<prefix>/image_001.png) (알려진 이미지만)"""
    def replace(m):
        target = m.group(2)
        if target in names:
            return f"![{m.group(1)}]({prefix}/{target})"
        return m.group(0)
    return _IMAGE_LINK.sub(replace, markdown)


def write_output(result: ConvertResult, output_path: Union[str, Path]) -> Path:
    """
    Markdown 과 이미지를 파일로 저장

    이미지 하나를 쓰지 못하면 경고만 남기고 계속한다.

    Returns:
        Path: 저장한 .md 경로
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    markdown = result.markdown

    if result.images:
        image_dir = image_dir_for(output_path)
        written = set()
        for image in result.images:
            try:
                image_dir.mkdir(parents=True, exist_ok=True)
                (image_dir / image.filename).write_bytes(image.data)
                written.add(image.filename)
            except OSError as e:
                logger.warning("could not write image %s: %s", image.filename, e)
        markdown = rewrite_image_links(markdown, image_dir.name, written)

    output_path.write_text(markdown, encoding='utf-8')
    logger.debug("wrote %s (%d images)", output_path, len(result.images))
    return output_path
