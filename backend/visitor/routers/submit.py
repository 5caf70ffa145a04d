"""
Submission router.

Receives a visitor capture from the landing page and relays it as an email
to the app's own mailbox.

Endpoints:
  POST /submit   — validate, build message, pick transport, send

Responses:
  200 {"success": true}
  400 {"error": "No image received"}
  500 {"error": "Mail failed", "details": "<error message>"}

The mail config, test-account provisioner and transport factory are FastAPI
dependencies so tests can swap them through ``app.dependency_overrides``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from visitor.config import get_from_name, get_mail_subject, resolve_mail_config
from visitor.models.mail import MailConfig
from visitor.models.submission import Submission
from visitor.services.mail_transport import (
    AUTH_ERROR_CODE,
    MailTransportError,
    SmtpTransport,
    AccountProvisioner,
    TransportFactory,
    create_test_account,
    get_test_message_url,
    select_transport,
)
from visitor.services.message_builder import build_message

logger = logging.getLogger(__name__)

router = APIRouter()

NO_IMAGE_ERROR = "No image received"
MAIL_FAILED_ERROR = "Mail failed"

_AUTH_HINT = (
    "MAIL ERROR (authentication). Check SMTP_USER and SMTP_PASS (or APP_PASS) "
    "environment variables and Gmail app password/OAuth settings."
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_mail_config() -> MailConfig:
    """Resolve mail credentials fresh for every request."""
    return resolve_mail_config()


def get_test_account_provisioner() -> AccountProvisioner:
    return create_test_account


def get_transport_factory() -> TransportFactory:
    return SmtpTransport


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@router.post("/submit")
async def submit(
    submission: Optional[Submission] = None,
    config: MailConfig = Depends(get_mail_config),
    create_account: AccountProvisioner = Depends(get_test_account_provisioner),
    transport_factory: TransportFactory = Depends(get_transport_factory),
):
    """
    Email a visitor capture to the configured mailbox.

    A missing body is treated like ``{}``. Send failures are never retried.
    """
    if submission is None or not submission.has_image():
        return JSONResponse(status_code=400, content={"error": NO_IMAGE_ERROR})

    try:
        message = build_message(
            submission,
            sender=config.user,
            subject=get_mail_subject(),
            sender_name=get_from_name(),
        )
        selection = await select_transport(config, create_account, transport_factory)
        info = await selection.transport.send(message)
    except MailTransportError as e:
        if e.code == AUTH_ERROR_CODE:
            logger.error(_AUTH_HINT)
        logger.error(f"MAIL ERROR: [{e.code}] {e}")
        return JSONResponse(
            status_code=500,
            content={"error": MAIL_FAILED_ERROR, "details": str(e)},
        )
    except Exception as e:
        logger.exception(f"MAIL ERROR: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": MAIL_FAILED_ERROR, "details": str(e)},
        )

    if selection.using_test_account:
        preview_url = get_test_message_url(info, selection.test_account.web_url)
        logger.info(f"Preview URL: {preview_url}")

    return {"success": True}
