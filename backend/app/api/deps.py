"""FastAPI dependency injection — repository, service and session guard."""
import logging
import os
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from app.db import AsyncSessionLocal
from app.services.errors import SnapshotReadError
from app.services.profitability_service import ProfitabilityService
from app.services.read_repository import ReadRepository, SqlReadRepository

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "changethis_use_a_real_secret_in_production_64chars")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

logger = logging.getLogger("dowee-api.auth")

security = HTTPBearer(auto_error=False)


def get_repository() -> ReadRepository:
    return SqlReadRepository(AsyncSessionLocal)


def get_service(repo: ReadRepository = Depends(get_repository)) -> ProfitabilityService:
    return ProfitabilityService(repo)


async def get_current_employee_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    repo: ReadRepository = Depends(get_repository),
) -> str:
    """
    Resolve the requesting employee from the bearer token.

    401 when the token is missing or invalid; 403 when the token is valid but
    its subject is not an employee (orphan session).

    FastAPI resolves this before the body is validated, so even a request the
    service will reject costs this one read. The service itself validates
    before any of its own reads.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
        employee_id: str = payload.get("sub")
        if not employee_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        known = await repo.employee_exists(employee_id)
    except SnapshotReadError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Employee directory unavailable",
        )
    if not known:
        logger.warning("Session subject is not an employee", extra={"employee_id": employee_id})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No employee for this session")
    return employee_id
