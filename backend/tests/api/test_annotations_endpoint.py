"""API tests for per-study annotation and measurement blobs."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from ecocol.api.v1.endpoints.annotations import router as annotations_router
from ecocol.canvas.geometry import Point
from ecocol.canvas.records import ArrowAnnotation, TextAnnotation, build_measurement
from ecocol.canvas.store import AnnotationStore, MeasurementStore
from ecocol.services.storage import AnnotationBlobStorage


@pytest.fixture
async def storage(tmp_blob_dir) -> AnnotationBlobStorage:
    service = AnnotationBlobStorage(tmp_blob_dir)
    await service.initialize()
    return service


@pytest.fixture
def test_app(storage: AnnotationBlobStorage) -> FastAPI:
    app = FastAPI()
    app.include_router(annotations_router, prefix="/api/v1/studies")
    app.state.blob_storage = storage
    return app


@pytest.fixture
async def client(test_app: FastAPI):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _annotation_blob() -> str:
    store = AnnotationStore()
    store.add(ArrowAnnotation(start=Point(x=0, y=0), end=Point(x=5, y=5)))
    store.add(TextAnnotation(position=Point(x=10, y=20), text="Lesion"))
    return store.serialize()


@pytest.mark.asyncio
async def test_get_without_blob_returns_empty_list(client: AsyncClient) -> None:
    response = await client.get("/api/v1/studies/US-0042/annotations")

    assert response.status_code == 200
    assert response.json() == {"study_id": "US-0042", "records": []}


@pytest.mark.asyncio
async def test_put_then_get_round_trips(client: AsyncClient) -> None:
    blob = _annotation_blob()

    response = await client.put("/api/v1/studies/US-0042/annotations", content=blob)
    assert response.status_code == 200
    assert response.json()["count"] == 2

    response = await client.get("/api/v1/studies/US-0042/annotations")
    records = response.json()["records"]
    assert [r["type"] for r in records] == ["arrow", "text"]
    assert [r["id"] for r in records] == [1, 2]
    assert records[1]["text"] == "Lesion"


@pytest.mark.asyncio
async def test_measurements_are_stored_separately(client: AsyncClient) -> None:
    store = MeasurementStore()
    store.add(build_measurement("ruler", Point(x=0, y=0), Point(x=3, y=4), 2.0))

    await client.put("/api/v1/studies/US-0042/measurements", content=store.serialize())

    measurements = (await client.get("/api/v1/studies/US-0042/measurements")).json()
    annotations = (await client.get("/api/v1/studies/US-0042/annotations")).json()
    assert measurements["records"][0]["value"]["mm"] == 10
    assert annotations["records"] == []


@pytest.mark.asyncio
async def test_put_malformed_blob_rejected(client: AsyncClient, storage) -> None:
    await client.put("/api/v1/studies/US-0042/annotations", content=_annotation_blob())

    response = await client.put(
        "/api/v1/studies/US-0042/annotations",
        content='[{"type": "hexagon"}]',
    )

    assert response.status_code == 422
    # The previously stored blob is untouched
    stored = await storage.load("US-0042", "annotations")
    assert stored is not None
    restored = AnnotationStore()
    restored.deserialize(stored)
    assert len(restored) == 2


@pytest.mark.asyncio
async def test_unknown_kind_rejected(client: AsyncClient) -> None:
    response = await client.get("/api/v1/studies/US-0042/overlays")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_invalid_study_id(client: AsyncClient) -> None:
    response = await client.put("/api/v1/studies/bad%20id/annotations", content="[]")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_delete(client: AsyncClient) -> None:
    await client.put("/api/v1/studies/US-0042/annotations", content="[]")

    response = await client.delete("/api/v1/studies/US-0042/annotations")
    assert response.status_code == 204

    response = await client.delete("/api/v1/studies/US-0042/annotations")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_storage_not_initialized() -> None:
    app = FastAPI()
    app.include_router(annotations_router, prefix="/api/v1/studies")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/v1/studies/US-0042/annotations")

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_get_corrupt_blob_rejected(client: AsyncClient, storage) -> None:
    await storage.save("US-0042", "annotations", "[{bad")

    response = await client.get("/api/v1/studies/US-0042/annotations")

    assert response.status_code == 422
    assert response.json()["detail"].startswith("Could not load annotations")
