"""
Health Check API Endpoints
Liveness and dependency checks
"""
import time
from datetime import datetime, timezone

from fastapi import APIRouter

from app.core.dependency_injection import (
    check_services_health, get_connection_manager, get_repository_manager
)
from app.database.firestore import TENANTS_COLLECTION
from app.models.dto import ApiResponseDTO

router = APIRouter()


@router.get("/ping", response_model=ApiResponseDTO)
async def ping():
    """Simple ping endpoint"""
    return ApiResponseDTO(
        success=True,
        message="pong",
        data={
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": "healthy"
        }
    )


@router.get("/detailed", response_model=ApiResponseDTO)
async def detailed_health_check():
    """Storage reachability, service wiring and websocket counts"""
    start_time = time.time()
    health_data = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "response_time_ms": 0,
        "services": {
            "api": True,
            "database": False,
        }
    }

    try:
        repository_manager = get_repository_manager()
        await repository_manager.get_repository(TENANTS_COLLECTION).get_by_id("health-check")
        health_data["services"]["database"] = True
        health_data["database_backend"] = repository_manager.backend
        health_data["cache"] = repository_manager.get_cache_stats()
    except Exception as e:
        health_data["status"] = "degraded"
        health_data["database_error"] = str(e)

    health_data["container"] = check_services_health()
    health_data["websockets"] = get_connection_manager().get_connection_stats()
    health_data["response_time_ms"] = round((time.time() - start_time) * 1000, 2)

    return ApiResponseDTO(
        success=True,
        message="Health check completed",
        data=health_data
    )
