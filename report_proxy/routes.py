from fastapi import APIRouter

from report_proxy.ssrs_proxy.route import router as ssrs_proxy_router

router = APIRouter()

router.include_router(ssrs_proxy_router)
