from fastapi import APIRouter

from .control import router as control_router
from .proxy import router as proxy_router

router = APIRouter()

# Control endpoints first; the proxy route catches every remaining path
router.include_router(control_router)

router.include_router(proxy_router)
