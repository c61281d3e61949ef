import os
import logging
from typing import Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Ensure environment variables from .env are loaded when this module is imported.
load_dotenv()


def chain_base_url(fqdn: Optional[str] = None) -> str:
    """Return the HTTPS base URL of the chain service.

    Raises
    ------
    RuntimeError
        If neither ``fqdn`` nor ``CHAIN_BASE_FQDN`` is set.
    """
    fqdn = fqdn or os.environ.get("CHAIN_BASE_FQDN")
    if not fqdn:
        raise RuntimeError("Environment variable 'CHAIN_BASE_FQDN' is not set")
    return ("https://" + fqdn).rstrip("/")


def open_session(fqdn: Optional[str] = None):
    """Open a requests session to the chain service and fetch CSRF.

    Returns
    -------
    tuple[requests.Session, str]
        The initialized session and CSRF token string.

    Raises
    ------
    RuntimeError
        If the base FQDN is not configured or the session cannot be
        established, including when the server returns no CSRF cookie. Any
        underlying exception is re-raised as a ``RuntimeError`` with context.
    """
    url = chain_base_url(fqdn)

    session = requests.Session()
    try:
        response = session.get(url)
        response.raise_for_status()

        csrf_token = response.cookies.get("csrftoken")
        if not csrf_token:
            raise RuntimeError("Server did not return a CSRF token")
        # Do not log the CSRF token value
        logger.debug("CSRF token acquired")
        return session, csrf_token

    except Exception as e:
        logger.critical(f"Error occurred while starting session: {e}")
        raise RuntimeError(f"Failed to establish session: {e}") from e


def get_jwt_token(session: requests.Session, fqdn: Optional[str] = None) -> str:
    """Obtain a JWT access token for the lottery operator account.

    Parameters
    ----------
    session : requests.Session
        A live session for the chain service.
    fqdn : Optional[str]
        Service host; defaults to ``CHAIN_BASE_FQDN``.

    Raises
    ------
    RuntimeError
        If the operator credentials are not configured.
    requests.HTTPError
        If the login request fails.
    KeyError
        If the response payload does not include an ``"access"`` field.
    """
    username = os.environ.get("CHAIN_ADMIN_USERNAME")
    password = os.environ.get("CHAIN_ADMIN_PASSWORD")
    if not username or not password:
        raise RuntimeError(
            "Environment variables 'CHAIN_ADMIN_USERNAME' and "
            "'CHAIN_ADMIN_PASSWORD' must be set"
        )
    # Never log raw credentials
    logger.debug("Attempting JWT login with configured operator username")

    url = chain_base_url(fqdn) + "/api/v1/auth/jwt-token"
    response = session.post(url, json={"username": username, "password": password})
    response.raise_for_status()

    # Avoid logging headers/body/response as they may contain sensitive data
    logger.debug("JWT token response received (content redacted)")
    return response.json()["access"]
