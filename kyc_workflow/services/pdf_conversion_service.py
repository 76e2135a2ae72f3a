import asyncio
import io
import logging
import os
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image

from kyc_workflow.core import settings
from kyc_workflow.core.errors import ValidationError

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"


class PdfConversionService:
    """Turns uploaded images into one multi-page PDF written to TEMP_DIR.

    Scratch files are left in place for the temp sweeper to remove.
    """

    def __init__(self, temp_dir: Optional[str] = None):
        self._temp_dir = temp_dir

    @property
    def temp_dir(self) -> Path:
        return Path(self._temp_dir or settings.TEMP_DIR)

    def _open_page(self, name: str, contents: bytes) -> Image.Image:
        image = Image.open(io.BytesIO(contents))
        image.load()
        # PDF pages cannot carry alpha or palette modes
        return image.convert("RGB")

    def _build(self, files: List[Tuple[str, str, bytes]], base_name: str) -> Tuple[Path, List[str]]:
        pages: List[Image.Image] = []
        skipped: List[str] = []
        for name, mime_type, contents in files:
            if mime_type == PDF_MIME:
                # Pillow can write PDFs but not read them
                logger.warning("Skipping %s in merged PDF: already a PDF", name)
                skipped.append(name)
                continue
            try:
                pages.append(self._open_page(name, contents))
            except Exception as e:
                logger.warning("Skipping %s in merged PDF: %s", name, e)
                skipped.append(name)

        if not pages:
            raise ValidationError.for_field("category", "No convertible images in this category")

        os.makedirs(self.temp_dir, exist_ok=True)
        output_path = self.temp_dir / f"{base_name}_{uuid.uuid4().hex[:8]}.pdf"
        first, rest = pages[0], pages[1:]
        first.save(output_path, "PDF", resolution=150.0, save_all=True, append_images=rest)
        logger.info("Created merged PDF %s with %d page(s)", output_path.name, len(pages))
        return output_path, skipped

    async def merge_to_pdf(self, files: List[Tuple[str, str, bytes]], base_name: str) -> Tuple[Path, List[str]]:
        """``files`` is a list of ``(file_name, mime_type, bytes)``."""
        return await asyncio.to_thread(self._build, files, base_name)


pdf_conversion_service = PdfConversionService()
