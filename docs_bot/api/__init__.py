"""API router for Docs Bot endpoints."""

from fastapi import APIRouter

from docs_bot.api import webhooks

router = APIRouter()

# GitHub webhooks (signature-verified, no auth middleware)
router.include_router(webhooks.router, tags=["webhooks"])
