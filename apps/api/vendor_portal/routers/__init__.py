from vendor_portal.routers.upload_requests import router as upload_requests_router
from vendor_portal.routers.vendor_upload import router as vendor_upload_router

__all__ = ["upload_requests_router", "vendor_upload_router"]
