"""
Final signed PDF assembly.

Each signature is rendered onto a transparent reportlab overlay the size of
its target page, and the overlay is merged onto the original page with
PyPDF2. Placement coordinates are PDF points with the origin at the
bottom-left corner of the page.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from typing import Dict, List, Optional

from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.colors import Color, HexColor
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from modules.documents.models.signature import SignatureMethod

logger = logging.getLogger(__name__)


@dataclass
class SignatureStamp:
    page_number: int
    x: float
    y: float
    payload: bytes
    signer_name: str
    signed_at: datetime
    method: SignatureMethod = SignatureMethod.DRAWN
    width: Optional[float] = None
    height: Optional[float] = None

    @classmethod
    def from_signature(cls, signature) -> "SignatureStamp":
        return cls(
            page_number=signature.page_number,
            x=signature.x,
            y=signature.y,
            width=signature.width,
            height=signature.height,
            payload=signature.payload,
            signer_name=signature.signer_name,
            signed_at=signature.signed_at,
            method=signature.method,
        )


class PDFSignatureAssembler:
    DEFAULT_WIDTH = 150
    DEFAULT_HEIGHT = 50
    TEXT_COLOR = HexColor('#000000')
    CAPTION_COLOR = Color(0.5, 0.5, 0.5)
    FALLBACK_COLOR = Color(0, 0, 0.8)

    def assemble_signed(self, original_pdf: bytes, stamps: List[SignatureStamp]) -> bytes:
        """Return a new PDF with every stamp drawn onto its page."""
        reader = PdfReader(BytesIO(original_pdf))
        writer = PdfWriter()

        by_page: Dict[int, List[SignatureStamp]] = defaultdict(list)
        for stamp in stamps:
            if 1 <= stamp.page_number <= len(reader.pages):
                by_page[stamp.page_number].append(stamp)
            else:
                logger.warning(
                    "Skipping signature of %s: page %s outside document (%s pages)",
                    stamp.signer_name, stamp.page_number, len(reader.pages)
                )

        for page_number, page in enumerate(reader.pages, start=1):
            page_stamps = by_page.get(page_number)
            if page_stamps:
                width = float(page.mediabox.width)
                height = float(page.mediabox.height)
                overlay = self._create_overlay_page(page_stamps, width, height)
                page.merge_page(PdfReader(overlay).pages[0])
            writer.add_page(page)

        output = BytesIO()
        writer.write(output)
        return output.getvalue()

    def _create_overlay_page(self, stamps: List[SignatureStamp], width: float, height: float) -> BytesIO:
        buffer = BytesIO()
        overlay = canvas.Canvas(buffer, pagesize=(width, height))
        for stamp in stamps:
            self._draw_stamp(overlay, stamp)
        overlay.save()
        buffer.seek(0)
        return buffer

    def _draw_stamp(self, overlay, stamp: SignatureStamp) -> None:
        if stamp.method == SignatureMethod.TYPED:
            typed = stamp.payload.decode("utf-8", errors="replace").strip() or stamp.signer_name
            self._draw_text_signature(overlay, typed, stamp)
            return

        try:
            image = ImageReader(BytesIO(stamp.payload))
            image.getSize()
        except Exception:
            logger.warning(
                "Could not decode signature image of %s, rendering name instead",
                stamp.signer_name
            )
            self._draw_text_signature(overlay, f"Signed by: {stamp.signer_name}", stamp)
            return

        overlay.drawImage(
            image, stamp.x, stamp.y,
            width=stamp.width or self.DEFAULT_WIDTH,
            height=stamp.height or self.DEFAULT_HEIGHT,
            mask='auto',
        )
        self._draw_caption(overlay, stamp)

    def _draw_caption(self, overlay, stamp: SignatureStamp) -> None:
        overlay.setFont('Helvetica', 8)
        overlay.setFillColor(self.TEXT_COLOR)
        overlay.drawString(stamp.x, stamp.y - 15, stamp.signer_name)
        overlay.setFillColor(self.CAPTION_COLOR)
        overlay.drawString(stamp.x, stamp.y - 25, stamp.signed_at.strftime('%Y-%m-%d'))

    def _draw_text_signature(self, overlay, text: str, stamp: SignatureStamp) -> None:
        overlay.setFont('Helvetica', 12)
        overlay.setFillColor(self.FALLBACK_COLOR)
        overlay.drawString(stamp.x, stamp.y, text[:80])
        overlay.setStrokeColor(self.FALLBACK_COLOR)
        overlay.setLineWidth(1)
        overlay.line(stamp.x, stamp.y - 2, stamp.x + (stamp.width or 200), stamp.y - 2)
        self._draw_caption(overlay, stamp)


def read_page_count(pdf_bytes: bytes) -> int:
    return len(PdfReader(BytesIO(pdf_bytes)).pages)
