"""
API v1 Router

Routes are mounted at the paths the CRM marketplace and app extensions call.
"""

from fastapi import APIRouter
from . import installations, todos, users

router = APIRouter()

router.include_router(installations.router, prefix="/callback", tags=["Installations"])
router.include_router(todos.router, prefix="/todo", tags=["Todos"])
router.include_router(users.router, tags=["Users"])
