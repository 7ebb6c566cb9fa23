from .admin import router as admin_router
from .auth import router as auth_router
from .exam import router as exam_router

routes = [
    auth_router,
    exam_router,
    admin_router,
]
