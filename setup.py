"""
litmd - PDF/DOCX/XLSX → Markdown
pip install -e . 또는 pip install -e .[dev]
"""

from setuptools import setup, find_packages
from pathlib import Path

readme = Path(__file__).parent / "README.md"
long_description = readme.read_text(encoding='utf-8') if readme.exists() else ""

setup(
    name="litmd",
    version="1.0.0",
    description="PDF, DOCX, XLSX 문서를 Markdown으로 변환 (레이아웃 재구성, 표/목차/각주 감지)",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",

    packages=find_packages(include=['litmd', 'litmd.*']),

    python_requires=">=3.8",
    install_requires=[
        'cryptography>=43.0',
    ],

    extras_require={
        'test': ['pytest>=7.0', 'pytest-cov>=4.0', 'pypdf>=4.0'],
        'dev': ['pytest>=7.0', 'pytest-cov>=4.0', 'pypdf>=4.0'],
    },

    entry_points={
        'console_scripts': [
            'litmd=litmd.__main__:main',
        ],
    },

    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Text Processing :: Markup :: Markdown",
    ],

    keywords="pdf docx xlsx markdown converter",
)
