"""Signed blob download endpoint"""
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from snapfeed.api.deps import get_blob_store
from snapfeed.errors import Forbidden, NotFound
from snapfeed.utils.blob_store import BlobKeyError, LocalBlobStore
from snapfeed.utils.logger import logger

router = APIRouter(prefix="/v1/files", tags=["files"])


@router.get("/{key}")
def download_file(
    key: str,
    expires: Optional[str] = None,
    sig: Optional[str] = None,
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """
    Serve a post attachment through a link issued with the post
    """
    valid, reason = blob_store.verify(key, expires, sig)
    if not valid:
        logger.info("Blob link rejected", extra={"path": key, "reason": reason, "action": "download_file"})
        raise Forbidden("Invalid or expired file link")

    try:
        path = blob_store.path(key)
    except BlobKeyError as exc:
        raise NotFound("File not found") from exc

    return FileResponse(path, headers={"Content-Disposition": "attachment"})
