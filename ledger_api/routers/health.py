from fastapi import APIRouter, Request, Response, status

router = APIRouter()


@router.get("/healthz", summary="Health check")
async def health_check(request: Request, response: Response) -> dict[str, str]:
    database = request.app.state.database
    if not await database.ping():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "degraded", "database": "unreachable"}
    return {"status": "ok", "database": "ok"}
