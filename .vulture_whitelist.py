from main import app, health_check, lifespan
from shared.config import Settings
from vpnca.api.certificates import (
    get_ca_certificate,
    get_issued,
    issue_client_certificate,
    issue_server_certificate,
    list_issued,
)
from vpnca.ca.errors import DuplicateSubjectError, IssuedCertificateNotFoundError
from vpnca.metrics import ca_initialized_gauge
from vpnca.services.ca_engine import CertificateBundle

# Pydantic Settings
Settings.model_config
Settings.APP_ENV

# FastAPI handlers are registered by decorator
app
lifespan
health_check
get_ca_certificate
get_issued
issue_client_certificate
issue_server_certificate
list_issued

# Observable gauge is read by the metric readers
ca_initialized_gauge

# Public attributes for callers
DuplicateSubjectError.common_name
IssuedCertificateNotFoundError.common_name
CertificateBundle.to_dict
