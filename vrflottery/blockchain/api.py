import logging
from urllib.parse import urljoin
from dotenv import load_dotenv
from .utils import chain_base_url, open_session, get_jwt_token
from ..lottery.collaborators import PayoutGateway, RandomnessCoordinator
from typing import Any, Optional, Mapping

logger = logging.getLogger(__name__)


class ChainClient(RandomnessCoordinator, PayoutGateway):
    """HTTP client for the chain service hosting the VRF coordinator and wallet."""

    def __init__(self, base_fqdn: Optional[str] = None, timeout: int = 45):
        load_dotenv()
        try:
            self.base_url = chain_base_url(base_fqdn)
        except RuntimeError as e:
            raise ValueError(str(e)) from e

        session_info = open_session(base_fqdn)
        if not session_info or len(session_info) != 2:
            raise ValueError("open_session() must return (session, csrf_token)")
        self.session, self.csrf = session_info
        self.jwt = get_jwt_token(self.session, base_fqdn)
        self.timeout = timeout

    # -------- headers --------
    @property
    def auth_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.jwt}"}

    @property
    def auth_csrf_headers(self) -> Mapping[str, str]:
        return {**self.auth_headers, "X-CSRFTOKEN": self.csrf}

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        json: Optional[dict] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=headers or self.auth_headers,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None

    # -------- randomness coordinator --------
    def request_random_words(
        self,
        *,
        key_hash: str,
        subscription_id: int,
        request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
    ) -> int:
        """Submit a VRF request and return the coordinator's request id."""
        response = self._request(
            "POST",
            "/api/v1/vrf/requests",
            headers=self.auth_csrf_headers,
            json={
                "key_hash": key_hash,
                "subscription_id": subscription_id,
                "request_confirmations": request_confirmations,
                "callback_gas_limit": callback_gas_limit,
                "num_words": num_words,
            },
        )
        if not isinstance(response, dict) or response.get("request_id") is None:
            raise RuntimeError(f"Unexpected VRF request response: {response!r}")
        request_id = int(response["request_id"])
        logger.debug(f"VRF request {request_id} submitted")
        return request_id

    # -------- payouts --------
    def transfer(self, recipient: str, amount: int) -> bool:
        """Pay ``amount`` to ``recipient`` from the lottery wallet.

        Returns ``False`` when the service reports the transfer as rejected;
        transport and HTTP errors propagate.
        """
        response = self._request(
            "POST",
            "/api/v1/wallet/transfer",
            headers=self.auth_csrf_headers,
            json={"recipient": recipient, "amount": amount},
        )
        if not isinstance(response, dict):
            raise RuntimeError(f"Unexpected transfer response: {response!r}")
        if response.get("status") != "success":
            message = response.get("message")
            logger.warning(
                "Transfer rejected" + (f": {message}" if message else ".")
            )
            return False
        return True
