"""Annotation blob endpoints for ECO-COL Viewer.

Stores the serialized annotation and measurement lists of each study. Blobs
are validated with the same stores the viewer uses before they are written.
"""

from enum import Enum
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ecocol.canvas.store import AnnotationStore, MeasurementStore, RecordStore
from ecocol.core.errors import RecordParseError
from ecocol.core.logging import audit_logger, get_logger
from ecocol.services.storage import AnnotationBlobStorage

logger = get_logger(__name__)
router = APIRouter()


class BlobKind(str, Enum):
    """Kinds of blob stored per study."""

    ANNOTATIONS = "annotations"
    MEASUREMENTS = "measurements"


class RecordListResponse(BaseModel):
    """Records stored for a study."""

    study_id: str
    records: list[dict[str, Any]] = Field(default_factory=list)


class BlobStoredResponse(BaseModel):
    """Result of storing a blob."""

    study_id: str
    kind: BlobKind
    count: int
    size_bytes: int
    stored_at: str


async def get_blob_storage(request: Request) -> AnnotationBlobStorage:
    """Blob storage initialized by the application lifespan."""
    storage = getattr(request.app.state, "blob_storage", None)
    if storage is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Annotation storage not initialized",
        )
    return storage


def _new_store(kind: BlobKind) -> RecordStore:
    if kind is BlobKind.ANNOTATIONS:
        return AnnotationStore()
    return MeasurementStore()


def _invalid_study(study_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Invalid study id: {study_id}",
    )


@router.get("/{study_id}/{kind}", response_model=RecordListResponse)
async def get_records(
    study_id: str,
    kind: BlobKind,
    storage: Annotated[AnnotationBlobStorage, Depends(get_blob_storage)],
) -> RecordListResponse:
    """Get the records stored for a study (empty when nothing was saved)."""
    try:
        blob = await storage.load(study_id, kind.value)
    except ValueError:
        raise _invalid_study(study_id)

    store = _new_store(kind)
    if blob is not None:
        try:
            store.deserialize(blob)
        except RecordParseError as e:
            audit_logger.log_access(
                resource_type=kind.value,
                resource_id=study_id,
                action="READ",
                success=False,
                details={"reason": e.reason},
            )
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=str(e),
            )

    audit_logger.log_access(resource_type=kind.value, resource_id=study_id, action="READ")

    return RecordListResponse(
        study_id=study_id,
        records=[record.model_dump(mode="json") for record in store.records],
    )


@router.put("/{study_id}/{kind}", response_model=BlobStoredResponse)
async def put_records(
    study_id: str,
    kind: BlobKind,
    request: Request,
    storage: Annotated[AnnotationBlobStorage, Depends(get_blob_storage)],
) -> BlobStoredResponse:
    """Replace the blob stored for a study.

    The body is the JSON array produced by the viewer's ``serialize``.
    """
    body = await request.body()
    store = _new_store(kind)
    try:
        store.deserialize(body)
    except RecordParseError as e:
        audit_logger.log_access(
            resource_type=kind.value,
            resource_id=study_id,
            action="WRITE",
            success=False,
            details={"reason": e.reason},
        )
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    try:
        info = await storage.save(study_id, kind.value, store.serialize())
    except ValueError:
        raise _invalid_study(study_id)

    audit_logger.log_access(
        resource_type=kind.value,
        resource_id=study_id,
        action="WRITE",
        details={"count": len(store)},
    )

    return BlobStoredResponse(
        study_id=study_id,
        kind=kind,
        count=len(store),
        size_bytes=info["size_bytes"],
        stored_at=info["stored_at"],
    )


@router.delete("/{study_id}/{kind}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_records(
    study_id: str,
    kind: BlobKind,
    storage: Annotated[AnnotationBlobStorage, Depends(get_blob_storage)],
) -> None:
    """Delete the blob stored for a study."""
    try:
        deleted = await storage.delete(study_id, kind.value)
    except ValueError:
        raise _invalid_study(study_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No {kind.value} stored for study: {study_id}",
        )

    audit_logger.log_access(resource_type=kind.value, resource_id=study_id, action="DELETE")
