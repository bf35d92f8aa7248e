"""Uploads API controller: listing and text preview of stored chat files."""

import logging

from fastapi import APIRouter, Depends, Path, Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from app.core.dependencies import validate_token
from app.exceptions.base import NotFoundError
from app.schemas.base import ResponseSchema
from app.schemas.chat import UploadedFile
from app.services.attachment_service import AttachmentService, get_attachment_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/uploads",
    tags=["uploads"],
    dependencies=[Depends(validate_token)],
)

TEXT_SUFFIXES = (".txt",)


@router.get("", response_model=ResponseSchema)
async def list_uploads(
    _request: Request,
    attachments: AttachmentService = Depends(get_attachment_service),
):
    """List stored uploads, newest first."""
    files = [UploadedFile(**entry).model_dump() for entry in attachments.list_files()]

    return ResponseSchema(
        status="success",
        message="Uploads retrieved successfully",
        data={"files": files},
    )


@router.get("/view/{filename}")
async def view_upload(
    _request: Request,
    filename: str = Path(..., description="Stored file name"),
    attachments: AttachmentService = Depends(get_attachment_service),
):
    """Show a text upload inline; other files redirect to their public URL."""
    path = attachments.resolve(filename)
    if path is None:
        raise NotFoundError(f"Upload {filename} not found", details={"filename": filename})

    if path.suffix.lower() not in TEXT_SUFFIXES:
        return RedirectResponse(attachments.public_url(path.name))

    content = path.read_bytes().decode("utf-8", errors="replace")
    return PlainTextResponse(content)
