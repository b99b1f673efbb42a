from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Query
from pydantic import ValidationError

from careermatrix.api.schemas import (
    CapabilityListPublicResponse,
    GroupedCriteriaPublicResponse,
    GroupedLevelsPublicResponse,
    SearchRequest,
    SeedReportPublicResponse,
)
from careermatrix.core.config import config
from careermatrix.core.errors import (
    DuplicateIdError,
    MalformedFilterError,
    MatrixError,
    NotFoundReferenceError,
    StoreUnavailableError,
)
from careermatrix.core.fallback import load_sample_matrix_payload
from careermatrix.core.models import (
    Capability,
    CreateCapabilityInput,
    CreateCriterionInput,
    CreateEditHistoryEntryInput,
    CreateJobLevelInput,
    CreateOverviewContentInput,
    Criterion,
    EditHistoryEntry,
    JobLevel,
    MatrixData,
    Overview,
    OverviewContent,
)
from careermatrix.core.version import __version__
from careermatrix.engine.assembler import MatrixGrid
from careermatrix.service import MatrixService

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Career Matrix API",
    description="Engineering career-level matrix: levels, criteria and capabilities",
    version=__version__,
)


def _build_service() -> MatrixService:
    service = MatrixService.from_config(config)
    if config.policy.seed_sample_on_startup and not service.store.list_job_levels():
        report = service.seed_data(load_sample_matrix_payload())
        logger.info("Seeded sample matrix on startup (%s capabilities)", report.capabilities)
    return service


SERVICE = _build_service()


def _http_error(exc: MatrixError) -> HTTPException:
    if isinstance(exc, MalformedFilterError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundReferenceError):
        return HTTPException(
            status_code=404,
            detail={"error": "missing_reference", "entity": exc.entity, "id": str(exc.entity_id), "message": str(exc)},
        )
    if isinstance(exc, DuplicateIdError):
        return HTTPException(
            status_code=409,
            detail={"error": "duplicate_id", "entity": exc.entity, "id": str(exc.entity_id), "message": str(exc)},
        )
    if isinstance(exc, StoreUnavailableError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _query_filters(
    levels: Optional[List[str]],
    categories: Optional[List[str]],
    sub_categories: Optional[List[str]],
    search: Optional[str],
) -> Dict[str, Any]:
    filters: Dict[str, Any] = {
        "levels": levels,
        "categories": categories,
        "subCategories": sub_categories,
        "search": search,
    }
    return {key: value for key, value in filters.items() if value is not None}


@app.get("/health")
def health_check():
    return {"status": "healthy", "version": __version__, "diagnostics": SERVICE.diagnostics()}


@app.get("/ready")
def readiness_check():
    store_ready = SERVICE.readiness()
    ready = bool(store_ready.get("ready"))
    payload = {
        "status": "ready" if ready else "degraded",
        "checks": {"store": store_ready},
    }
    if not ready:
        raise HTTPException(status_code=503, detail=payload)
    return payload


@app.get("/levels", response_model=List[JobLevel])
def list_job_levels():
    try:
        return SERVICE.get_job_levels()
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.get("/levels/grouped", response_model=GroupedLevelsPublicResponse)
def list_job_levels_grouped():
    try:
        titles = SERVICE.get_grouped_levels()
    except MatrixError as exc:
        raise _http_error(exc) from exc
    return {"title_count": len(titles), "titles": titles}


@app.get("/criteria", response_model=List[Criterion])
def list_criteria():
    try:
        return SERVICE.get_criteria()
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.get("/criteria/grouped", response_model=GroupedCriteriaPublicResponse)
def list_criteria_grouped():
    try:
        categories = SERVICE.get_grouped_criteria()
    except MatrixError as exc:
        raise _http_error(exc) from exc
    return {"category_count": len(categories), "categories": categories}


@app.get("/capabilities", response_model=CapabilityListPublicResponse)
def list_capabilities(
    levels: Optional[List[str]] = Query(None),
    categories: Optional[List[str]] = Query(None),
    sub_categories: Optional[List[str]] = Query(None, alias="subCategories"),
    search: Optional[str] = None,
):
    try:
        capabilities = SERVICE.get_capabilities(_query_filters(levels, categories, sub_categories, search))
    except MatrixError as exc:
        raise _http_error(exc) from exc
    return {"count": len(capabilities), "capabilities": capabilities}


@app.get("/matrix", response_model=MatrixData)
def get_matrix(
    levels: Optional[List[str]] = Query(None),
    categories: Optional[List[str]] = Query(None),
    sub_categories: Optional[List[str]] = Query(None, alias="subCategories"),
    search: Optional[str] = None,
):
    try:
        return SERVICE.get_matrix_data(_query_filters(levels, categories, sub_categories, search))
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.post("/matrix/query", response_model=MatrixData)
def query_matrix(filters: Optional[Any] = Body(None)):
    try:
        return SERVICE.get_matrix_data(filters)
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.post("/matrix/grid", response_model=MatrixGrid)
def query_matrix_grid(filters: Optional[Any] = Body(None)):
    try:
        return SERVICE.get_matrix_grid(filters)
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.post("/search", response_model=CapabilityListPublicResponse)
def search_capabilities(req: SearchRequest):
    try:
        capabilities = SERVICE.search_capabilities(req.query, req.filters)
    except MatrixError as exc:
        raise _http_error(exc) from exc
    return {"count": len(capabilities), "capabilities": capabilities}


@app.get("/history", response_model=List[EditHistoryEntry])
def list_edit_history():
    try:
        return SERVICE.get_edit_history()
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.get("/overview", response_model=Overview)
def get_overview():
    try:
        return SERVICE.get_overview_content()
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.post("/levels", response_model=JobLevel, status_code=201)
def create_job_level(req: CreateJobLevelInput):
    try:
        return SERVICE.create_job_level(req)
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.post("/criteria", response_model=Criterion, status_code=201)
def create_criterion(req: CreateCriterionInput):
    try:
        return SERVICE.create_criterion(req)
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.post("/capabilities", response_model=Capability, status_code=201)
def create_capability(req: CreateCapabilityInput):
    try:
        return SERVICE.create_capability(req)
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.post("/history", response_model=EditHistoryEntry, status_code=201)
def create_edit_history_entry(req: CreateEditHistoryEntryInput):
    try:
        return SERVICE.create_edit_history_entry(req)
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.post("/overview", response_model=OverviewContent, status_code=201)
def create_overview_content(req: CreateOverviewContentInput):
    try:
        return SERVICE.create_overview_content(req)
    except MatrixError as exc:
        raise _http_error(exc) from exc


@app.post("/seed", response_model=SeedReportPublicResponse, status_code=201)
def seed_matrix(payload: Dict[str, Any] = Body(...)):
    try:
        report = SERVICE.seed_data(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc
    except MatrixError as exc:
        raise _http_error(exc) from exc
    return {"status": "seeded", **report.model_dump()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.api_host, port=config.api_port, reload=config.debug)
