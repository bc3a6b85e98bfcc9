"""
PDF 文本读取模块

职责：
- 查找目录下的活动报告 PDF
- 按页序提取纯文本（PyMuPDF）
- 空白扫描件的 OCR 兜底（可选）
- 只返回原始文本，不做字段匹配
"""

import os
import sys
import tempfile
import subprocess
import logging
from typing import List

import fitz  # PyMuPDF

from .errors import ExtractionError

logger = logging.getLogger("stop_invoicing")


def ensure_file_exists(pdf_path: str) -> None:
    """
    检查文件是否存在。

    Args:
        pdf_path: PDF 文件路径

    Raises:
        FileNotFoundError: 文件不存在
    """
    if not os.path.isfile(pdf_path):
        logger.error("File not found: %s", pdf_path)
        raise FileNotFoundError(pdf_path)


def find_pdf_files(directory: str) -> List[str]:
    """
    递归查找目录及子目录下的所有 PDF 文件。

    Args:
        directory: 搜索目录

    Returns:
        排序后的 PDF 路径列表（扩展名不区分大小写）

    Raises:
        FileNotFoundError: 目录不存在
    """
    if not os.path.isdir(directory):
        logger.error("Directory not found: %s", directory)
        raise FileNotFoundError(directory)

    results = []
    for root, _dirs, files in os.walk(directory):
        for name in files:
            if os.path.splitext(name)[1].lower() == ".pdf":
                results.append(os.path.join(root, name))
    return sorted(results)


def run_ocr(src_path: str, dst_path: str, lang: str) -> bool:
    """
    使用 ocrmypdf 对 PDF 添加 OCR 文本层。

    Args:
        src_path: 源 PDF 路径
        dst_path: 输出 PDF 路径
        lang: OCR 语言，如 "nld+eng"

    Returns:
        是否成功
    """
    cmd = [sys.executable, "-m", "ocrmypdf", "--skip-text", "-l", lang, src_path, dst_path]
    try:
        res = subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        logger.debug("ocrmypdf stderr: %s", res.stderr.decode(errors="ignore")[:2000])
        return True
    except subprocess.CalledProcessError as e:
        logger.error("ocrmypdf failed (exit=%s). cmd=%s", e.returncode, " ".join(cmd))
        logger.error("ocrmypdf stderr: %s", (e.stderr or b"").decode(errors="ignore")[:2000])
        return False


def extract_page_text(page) -> str:
    """
    从 PDF 页面提取文本（按阅读顺序排序）。

    Args:
        page: PyMuPDF 页面对象

    Returns:
        页面文本内容
    """
    return page.get_text("text", sort=True) or ""


def _read_pages(pdf_path: str) -> List[str]:
    try:
        doc = fitz.open(pdf_path)
    except Exception as e:
        logger.exception("Failed to open PDF: %s", pdf_path)
        raise ExtractionError(f"Cannot open PDF {pdf_path}: {e}") from e

    try:
        if doc.is_encrypted and not doc.authenticate(""):
            raise ExtractionError(f"Encrypted PDF not supported: {pdf_path}")
        pages = []
        for pno in range(doc.page_count):
            t = extract_page_text(doc.load_page(pno))
            logger.debug("%s page %d extracted, %d chars", os.path.basename(pdf_path), pno + 1, len(t))
            pages.append(t)
        return pages
    finally:
        doc.close()


def read_pdf_text(pdf_path: str, ocr_lang: str = "") -> str:
    """
    按页序提取 PDF 全部文本，拼接为一个字符串。

    Args:
        pdf_path: PDF 文件路径
        ocr_lang: OCR 语言，空字符串表示不使用 OCR 兜底

    Returns:
        全文文本（页与页之间以换行分隔）

    Raises:
        FileNotFoundError: 文件不存在
        ExtractionError: 文件无法作为 PDF 打开
    """
    ensure_file_exists(pdf_path)
    pages = _read_pages(pdf_path)

    # OCR 兜底：整份文件没有文本层（扫描件）
    if ocr_lang and all(not p.strip() for p in pages):
        logger.info("No text layer in %s; running OCR fallback...", pdf_path)
        with tempfile.TemporaryDirectory(prefix="report_ocr_") as td:
            ocr_out = os.path.join(td, "ocr.pdf")
            if run_ocr(pdf_path, ocr_out, ocr_lang):
                pages = _read_pages(ocr_out)

    return "\n".join(pages)
