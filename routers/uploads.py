import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pymongo.database import Database

from database import create_document, get_db, now_utc, to_public_id
from schemas import Photo
from security import get_current_user
from storage import DriveClient, StorageError, UnsupportedFileType, get_drive, store_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


def save_upload(db: Database, drive: DriveClient, file: UploadFile) -> Dict[str, Any]:
    """Compress, store and record an upload; returns the file reference (without db id)."""
    data = file.file.read()
    try:
        stored = store_upload(drive, file.filename or "upload", file.content_type or "", data)
    except UnsupportedFileType as exc:
        raise HTTPException(400, detail=str(exc))
    except StorageError:
        logger.exception("Upload of %s failed", file.filename)
        raise HTTPException(502, detail="File storage upload failed")
    file_ref = Photo(**stored, uploaded_at=now_utc()).model_dump()
    create_document(db, "photo", dict(file_ref))
    return file_ref


@router.post("", status_code=201)
def upload_file(
    file: UploadFile = File(...),
    db: Database = Depends(get_db),
    drive: DriveClient = Depends(get_drive),
    _=Depends(get_current_user),
):
    file_ref = save_upload(db, drive, file)
    return {"message": "File uploaded successfully", "file": to_public_id(file_ref)}
