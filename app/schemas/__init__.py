"""Pydantic schemas for API request/response models."""

from app.schemas.auth import TokenPayload, UserSession
