from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.modules.analysis.schemas import (
    AnalysisNotFoundError,
    AnalysisRecord,
    AnalysisRequest,
    Company,
    CompanyCreate,
    CompanyNotFoundError,
)
from app.modules.analysis.service import AnalysisService
from app.modules.pricing.errors import EnsembleError

router = APIRouter(prefix="/analysis", tags=["analysis"])


def get_analysis_service(request: Request) -> AnalysisService:
    service = getattr(request.app.state, "analysis_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Analysis service not ready")
    return service


@router.post("/run", response_model=AnalysisRecord, status_code=status.HTTP_201_CREATED)
async def run_analysis(
    data: AnalysisRequest,
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisRecord:
    try:
        return await service.run_analysis(data)
    except EnsembleError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.get("/history/{user_id}", response_model=list[AnalysisRecord])
async def get_history(
    user_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    service: AnalysisService = Depends(get_analysis_service),
) -> list[AnalysisRecord]:
    return await service.get_history(user_id, limit=limit)


@router.get("/{analysis_id}", response_model=AnalysisRecord)
async def get_analysis(
    analysis_id: str,
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisRecord:
    try:
        return await service.get_analysis(analysis_id)
    except AnalysisNotFoundError:
        raise HTTPException(status_code=404, detail="Analysis not found")


companies_router = APIRouter(prefix="/companies", tags=["companies"])


@companies_router.get("/search", response_model=list[Company])
async def search_companies(
    q: str = Query(default=""),
    service: AnalysisService = Depends(get_analysis_service),
) -> list[Company]:
    return await service.search_companies(q)


@companies_router.get("/{company_id}", response_model=Company)
async def get_company(
    company_id: str,
    service: AnalysisService = Depends(get_analysis_service),
) -> Company:
    try:
        return await service.get_company(company_id)
    except CompanyNotFoundError:
        raise HTTPException(status_code=404, detail="Company not found")


@companies_router.post("", response_model=Company, status_code=status.HTTP_201_CREATED)
async def create_company(
    data: CompanyCreate,
    service: AnalysisService = Depends(get_analysis_service),
) -> Company:
    return await service.create_company(data)
