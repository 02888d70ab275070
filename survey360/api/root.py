from fastapi import APIRouter

router = APIRouter()

@router.get("/")
def root():
    return {
        "name": "Survey360 Backend",
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
    }
