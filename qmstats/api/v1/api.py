"""
API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from qmstats.api.v1.endpoints import (aggregation, auth, events, groups,
                                      stats, users)

api_router = APIRouter()

# Registration, login, tokens
api_router.include_router(auth.router)

# Profile, search, team leader
api_router.include_router(users.router)

# Manager groups and invitations
api_router.include_router(groups.router)

# Stat CRUD, PDF, send-to-leader
api_router.include_router(stats.router)

# Admin grid, exports, live stream
api_router.include_router(aggregation.router)
api_router.include_router(events.router)
