"""
Main API router that combines all v1 routes.
"""
from fastapi import APIRouter

from .v1 import chat, conversations, health, pairing, session, usage

# Create main router
router = APIRouter()

# Include all v1 routes
router.include_router(health.router, tags=["Health"])
router.include_router(usage.router, prefix="/usage", tags=["Usage"])
router.include_router(session.router, tags=["Session & Tier"])
router.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
router.include_router(chat.router, prefix="/chat", tags=["Chat"])
router.include_router(pairing.router, prefix="/pairing", tags=["Pairing"])
