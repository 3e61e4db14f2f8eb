from fastapi import APIRouter, Depends

from packages.store import Store
from ..deps import get_store
from ..schemas import HealthDocument


router = APIRouter()


@router.get("/health", response_model=HealthDocument)
def health(store: Store = Depends(get_store)):
    return store.snapshot()
