"""
Profitability routes.

Portfolio and project aggregates, priority scores, alerts and the
profitability / time-cost dashboards. Every endpoint is read-only and
scoped to the employee behind the bearer token.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_current_employee_id, get_service
from app.models.schemas import (
    AlertsRequest,
    AlertsResponse,
    PortfolioRequest,
    ProjectCostOut,
    ProjectOverviewRequest,
    ProjectProfitabilityRequest,
    ScoresRequest,
    ScoresResponse,
    TimeCostRequest,
)
from app.services.errors import InvalidRequestError, NotFoundError, SnapshotReadError
from app.services.profitability_service import ProfitabilityService

router = APIRouter(prefix="/api/v1", tags=["Profitability"])
logger = logging.getLogger("dowee-api.profitability")


async def _run(operation: str, coro):
    """Await a service call, mapping service errors onto HTTP statuses."""
    try:
        return await coro
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SnapshotReadError:
        logger.error(f"{operation}: snapshot read failed")
        raise HTTPException(status_code=503, detail="the aggregate could not be computed")


@router.post("/portfolio")
async def portfolio_overview(
    req: PortfolioRequest,
    employee_id: str = Depends(get_current_employee_id),
    service: ProfitabilityService = Depends(get_service),
) -> Dict[str, Any]:
    """Sold vs realized for the requested scope and year."""
    return await _run(
        "portfolio_overview",
        service.portfolio_overview(employee_id, req.scope, req.year, req.team),
    )


@router.post("/projects/overview")
async def project_overview(
    req: ProjectOverviewRequest,
    employee_id: str = Depends(get_current_employee_id),
    service: ProfitabilityService = Depends(get_service),
) -> Dict[str, Any]:
    return await _run("project_overview", service.project_overview(req.project_id, req.year))


@router.post("/projects/scores", response_model=ScoresResponse)
async def project_scores(
    req: ScoresRequest,
    employee_id: str = Depends(get_current_employee_id),
    service: ProfitabilityService = Depends(get_service),
):
    items = await _run("project_scores", service.project_scores(employee_id, req.scope))
    return {"scope": req.scope, "items": items}


@router.post("/alerts", response_model=AlertsResponse)
async def alerts(
    req: AlertsRequest,
    employee_id: str = Depends(get_current_employee_id),
    service: ProfitabilityService = Depends(get_service),
):
    items = await _run("alerts", service.alerts(employee_id, req.scope, req.limit))
    return {"scope": req.scope, "items": items}


@router.post("/profitability/projects")
async def project_profitability(
    req: ProjectProfitabilityRequest,
    employee_id: str = Depends(get_current_employee_id),
    service: ProfitabilityService = Depends(get_service),
) -> Dict[str, Any]:
    return await _run("project_profitability", service.project_profitability(req.client_id))


@router.get("/profitability/clients")
async def client_profitability(
    employee_id: str = Depends(get_current_employee_id),
    service: ProfitabilityService = Depends(get_service),
) -> Dict[str, Any]:
    return await _run("client_profitability", service.client_profitability())


@router.get("/projects/costs", response_model=Dict[str, ProjectCostOut])
async def project_costs(
    employee_id: str = Depends(get_current_employee_id),
    service: ProfitabilityService = Depends(get_service),
):
    """Planned and actual hours / internal cost per project."""
    return await _run("project_costs", service.project_costs())


@router.post("/time-cost")
async def time_cost_overview(
    req: TimeCostRequest,
    employee_id: str = Depends(get_current_employee_id),
    service: ProfitabilityService = Depends(get_service),
) -> Dict[str, Any]:
    return await _run("time_cost_overview", service.time_cost_overview(employee_id, req.start))


@router.get("/metrics-overview")
async def metrics_overview(
    employee_id: str = Depends(get_current_employee_id),
    service: ProfitabilityService = Depends(get_service),
) -> Dict[str, Any]:
    return await _run("metrics_overview", service.metrics_overview(employee_id))
