from keywarden.web.routers.access import router as access_router
from keywarden.web.routers.auth import router as auth_router
from keywarden.web.routers.groups import router as groups_router
from keywarden.web.routers.invites import router as invites_router
from keywarden.web.routers.keys import router as keys_router
from keywarden.web.routers.logs import router as logs_router
from keywarden.web.routers.policies import router as policies_router

__all__ = [
    "access_router",
    "auth_router",
    "groups_router",
    "invites_router",
    "keys_router",
    "logs_router",
    "policies_router",
]
