"""Onboarding schemas: first organization + first app in one call."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .apps import AppResponse
from .common import Platform
from .organizations import OrgResponse


class OnboardingOrgInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)


class OnboardingAppInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    platform: Platform


class OnboardingRequest(BaseModel):
    organization: OnboardingOrgInput
    app: OnboardingAppInput


class OnboardingResponse(BaseModel):
    organization: OrgResponse
    app: AppResponse
    permission_granted: bool = True
