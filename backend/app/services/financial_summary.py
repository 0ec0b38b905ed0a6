"""
Financial summaries — sold revenue against realized internal cost.

margin_pct is None (not 0, not infinity) whenever nothing was sold; callers
must read None as "unknown". Client and portfolio summaries add up sold and
cost first and compute one margin on the totals, never an average of
per-project percentages.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.models.records import ClientRecord, ProjectRecord


def budget_total(project: ProjectRecord) -> float:
    return (
        (project.budget_conception or 0.0)
        + (project.budget_crea or 0.0)
        + (project.budget_dev or 0.0)
    )


def sold_amount(project: ProjectRecord) -> float:
    """Quote amount when positive, otherwise the sum of the section budgets."""
    quote = project.quote_amount or 0.0
    if quote > 0:
        return float(quote)
    return float(budget_total(project))


def margin_figures(sold: float, cost: float) -> Dict[str, Optional[float]]:
    margin = sold - cost
    margin_pct = (margin / sold * 100) if sold > 0 else None
    return {
        "sold": round(sold, 2),
        "cost": round(cost, 2),
        "margin": round(margin, 2),
        "margin_pct": round(margin_pct, 2) if margin_pct is not None else None,
    }


def summarize_project(project: ProjectRecord, cost: float) -> Dict[str, Any]:
    return {
        "project_id": project.id,
        "code": project.code,
        "name": project.name,
        **margin_figures(sold_amount(project), cost),
    }


def summarize_portfolio(
    projects: Iterable[ProjectRecord],
    cost_by_project: Mapping[str, float],
) -> Dict[str, Any]:
    sold = 0.0
    cost = 0.0
    count = 0
    for p in projects:
        sold += sold_amount(p)
        cost += cost_by_project.get(p.id, 0.0)
        count += 1
    return {"projects_count": count, **margin_figures(sold, cost)}


def summarize_clients(
    projects: Iterable[ProjectRecord],
    clients: Mapping[str, ClientRecord],
    cost_by_project: Mapping[str, float],
) -> List[Dict[str, Any]]:
    """One row per client with at least one project; unknown clients are skipped."""
    grouped: Dict[str, List[ProjectRecord]] = {}
    for p in projects:
        if not p.client_id or p.client_id not in clients:
            continue
        grouped.setdefault(p.client_id, []).append(p)

    out = []
    for client_id, client_projects in grouped.items():
        client = clients[client_id]
        summary = summarize_portfolio(client_projects, cost_by_project)
        out.append({
            "client_id": client.id,
            "code": client.code,
            "name": client.name,
            **summary,
        })
    out.sort(key=lambda row: row["name"])
    return out
