from pydantic import BaseModel

GENERIC_ERROR_MESSAGE = "Something went wrong on the server"


class HealthResponse(BaseModel):
    status: str
    instance: str
    timestamp: str


class ErrorResponse(BaseModel):
    error: str = GENERIC_ERROR_MESSAGE
