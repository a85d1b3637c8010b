"""Pydantic schemas for CA API request/response validation."""

from datetime import datetime

from pydantic import BaseModel, Field


class IssueServerCertificateRequest(BaseModel):
    """Request body for issuing a server certificate."""

    common_name: str = Field(..., min_length=1, max_length=64)


class IssueClientCertificateRequest(BaseModel):
    """Request body for issuing a client certificate."""

    common_name: str = Field(..., min_length=1, max_length=64)
    expires_at: datetime


class CertificateBundleResponse(BaseModel):
    """An issued certificate and its private key."""

    common_name: str
    certificate: str
    private_key: str
    valid_from: int
    valid_to: int
    serial_number: str
    thumbprint: str

    model_config = {"from_attributes": True}


class CACertificateResponse(BaseModel):
    certificate: str


class IssuedListResponse(BaseModel):
    items: list[str]
    total: int
