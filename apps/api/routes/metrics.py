from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from packages.metrics import render

router = APIRouter()


@router.get("/metrics", response_class=PlainTextResponse)
def metrics():
    return render()
