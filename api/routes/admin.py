"""
api/routes/admin.py -- Admin-only server maintenance.

Routes:
  PUT /api/admin/ssl  -- replace the TLS certificate and private key files

The target paths come from SSL_CERT_PATH / SSL_KEY_PATH. Nothing is written
when either is unset. The reverse proxy is expected to pick up the new files
on its next reload; this endpoint does not restart anything.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Request

from api.models import CertificateUpload, OkResponse
from auth.dependencies import get_current_admin
from core.errors import BlogError, ClientError, ConfigurationError

logger = logging.getLogger("copperkoi.api")

router = APIRouter()


@router.put("/admin/ssl", response_model=OkResponse)
def upload_certificate(
    request: Request,
    body: CertificateUpload,
    admin: str = Depends(get_current_admin),
) -> OkResponse:
    if not body.cert or not body.key:
        raise ClientError("Missing cert or key")
    settings = request.app.state.settings
    if not settings.ssl_cert_path or not settings.ssl_key_path:
        raise ConfigurationError("SSL paths not configured")
    try:
        Path(settings.ssl_cert_path).write_text(body.cert, encoding="utf-8")
        Path(settings.ssl_key_path).write_text(body.key, encoding="utf-8")
    except OSError as exc:
        logger.exception("Certificate write failed")
        raise BlogError("Failed to update certificate") from exc
    logger.info("TLS certificate replaced")
    return OkResponse()
