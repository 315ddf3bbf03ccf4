from fastapi import APIRouter
from datetime import datetime, timezone
import socket

from server_template.schemas.health_schemas import HealthResponse

router = APIRouter(prefix="/health", tags=["Health"])


def build_health_payload() -> HealthResponse:
    """
    Probe payload shared by liveness and readiness.

    Readiness does not check dependencies: the process reports ready for as
    long as it is serving requests.
    """
    return HealthResponse(
        status="ok",
        instance=socket.gethostname(),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/liveness", response_model=HealthResponse)
def liveness():
    return build_health_payload()


@router.get("/readyness", response_model=HealthResponse)
def readyness():
    return build_health_payload()
