"""Certificate authority API endpoints.

Handlers are plain functions: key generation blocks, so FastAPI runs them in
its threadpool instead of on the event loop.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from vpnca.api.schemas import (
    CACertificateResponse,
    CertificateBundleResponse,
    IssueClientCertificateRequest,
    IssuedListResponse,
    IssueServerCertificateRequest,
)
from vpnca.ca.errors import (
    CANotInitializedError,
    DuplicateSubjectError,
    InvalidCommonNameError,
    InvalidExpiryError,
    IssuedCertificateNotFoundError,
)
from vpnca.services.ca_engine import CAEngine

router = APIRouter(prefix="/api/ca", tags=["ca"])

# Global engine instance, set during app startup
_engine: CAEngine | None = None


def set_engine(engine: CAEngine | None) -> None:
    """Set the global CA engine instance."""
    global _engine
    _engine = engine


def get_engine() -> CAEngine:
    """Dependency returning the initialized CA engine."""
    if _engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CA not initialized",
        )
    return _engine


@router.get("/certificate", response_model=CACertificateResponse)
def get_ca_certificate(engine: CAEngine = Depends(get_engine)) -> CACertificateResponse:
    """
    Get the CA root certificate.

    - Errors: 503 SERVICE_UNAVAILABLE before initialization
    """
    try:
        return CACertificateResponse(certificate=engine.ca_cert())
    except CANotInitializedError as e:
        raise HTTPException(status_code=503, detail=str(e)) from None


@router.get("/issued", response_model=IssuedListResponse)
def list_issued(engine: CAEngine = Depends(get_engine)) -> IssuedListResponse:
    names = engine.list_issued()
    return IssuedListResponse(items=names, total=len(names))


@router.get("/issued/{common_name}", response_model=CertificateBundleResponse)
def get_issued(
    common_name: str,
    engine: CAEngine = Depends(get_engine),
) -> CertificateBundleResponse:
    """
    Get a previously issued certificate and key.

    - Errors: 400 BAD_REQUEST (invalid common name), 404 NOT_FOUND
    """
    try:
        bundle = engine.get_issued_certificate(common_name)
    except InvalidCommonNameError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except IssuedCertificateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    return CertificateBundleResponse.model_validate(bundle)


@router.post(
    "/server-certificates",
    status_code=status.HTTP_201_CREATED,
    response_model=CertificateBundleResponse,
)
def issue_server_certificate(
    body: IssueServerCertificateRequest,
    engine: CAEngine = Depends(get_engine),
) -> CertificateBundleResponse:
    """
    Issue a server certificate.

    - Returns: 201 Created with certificate, key and validity
    - Errors: 400 BAD_REQUEST (invalid common name), 409 CONFLICT (already issued)
    """
    try:
        bundle = engine.issue_server_certificate(body.common_name)
    except InvalidCommonNameError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except DuplicateSubjectError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    return CertificateBundleResponse.model_validate(bundle)


@router.post(
    "/client-certificates",
    status_code=status.HTTP_201_CREATED,
    response_model=CertificateBundleResponse,
)
def issue_client_certificate(
    body: IssueClientCertificateRequest,
    engine: CAEngine = Depends(get_engine),
) -> CertificateBundleResponse:
    """
    Issue a client certificate expiring at expires_at.

    - Returns: 201 Created with certificate, key and validity
    - Errors: 400 BAD_REQUEST (invalid common name or expiry), 409 CONFLICT
    """
    try:
        bundle = engine.issue_client_certificate(body.common_name, body.expires_at)
    except (InvalidCommonNameError, InvalidExpiryError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except DuplicateSubjectError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    return CertificateBundleResponse.model_validate(bundle)
