"""Temporary artifact download and share QR code."""

import base64
import io
import logging

import qrcode
from fastapi import APIRouter, Request
from fastapi.responses import FileResponse
from qrcode.constants import ERROR_CORRECT_M

from reelgen.api.deps import Services
from reelgen.schemas.generation import QrCodeResponse

router = APIRouter()
logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def build_qr_data_url(text: str) -> str:
    """Encode ``text`` as a PNG QR code data URL."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=8, border=2)
    qr.add_data(text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


@router.get("/artifact/{url_id}")
async def get_artifact(url_id: str, services: Services) -> FileResponse:
    """
    Stream a finished video through its temporary link.

    Byte ranges are honoured (206/416). 404 for unknown links or missing
    files, 410 once the link has expired.
    """
    link = services.links.resolve(url_id)
    return FileResponse(
        path=link.file_path,
        media_type="video/mp4",
        filename=link.filename,
        content_disposition_type="inline",
        headers=NO_CACHE_HEADERS,
    )


@router.get("/artifact/{url_id}/qr", response_model=QrCodeResponse)
async def get_artifact_qr(url_id: str, request: Request, services: Services) -> QrCodeResponse:
    """QR code pointing at the absolute download URL of a live link."""
    link = services.links.resolve(url_id)
    video_url = str(request.url_for("get_artifact", url_id=link.id))
    logger.info(f"[ARTIFACT] QR code for {link.id}")
    return QrCodeResponse(
        qr_code_data_url=build_qr_data_url(video_url),
        video_url=video_url,
        expires_at=link.to_dict()["expiresAt"],
    )
