"""
Neynar client for the Farcaster social graph.

Only the calls the ledger depends on are implemented: profile lookup
(by username or fid), follow, and sign-in verification. Nothing here retries; callers see the
first failure as an UpstreamError.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import requests

from common.error_handling import ErrorCodes, UpstreamError
from common.schemas import Profile
from common.settings import settings
from common.tracing import get_trace_headers

logger = logging.getLogger(__name__)

ALREADY_FOLLOWING_MARKER = "already following"

SIGNER_APPROVED = "approved"

class FollowOutcome(str, Enum):
    FOLLOWED = "followed"
    ALREADY_FOLLOWING = "already_following"
    FAILED = "failed"

    @property
    def succeeded(self) -> bool:
        return self is not FollowOutcome.FAILED

@dataclass(frozen=True)
class SignInIdentity:
    fid: int
    signer_uuid: str

def _parse_user(data: Dict[str, Any]) -> Profile:
    pfp = data.get("pfp_url") or (data.get("pfp") or {}).get("url") or ""
    return Profile(
        fid=int(data["fid"]),
        username=data.get("username") or "",
        display_name=data.get("display_name") or data.get("displayName") or "",
        pfp_url=pfp,
    )

def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or ""
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)

class NeynarClient:
    def __init__(self, api_key: str = None, base_url: str = None, timeout: float = None,
                 session: requests.Session = None):
        self.api_key = settings.neynar_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.neynar_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.neynar_timeout_seconds
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        if not self.api_key:
            raise UpstreamError("Neynar API key is not configured.", code=ErrorCodes.UPSTREAM_MISCONFIGURED)
        headers = {"x-api-key": self.api_key, "accept": "application/json", **get_trace_headers()}
        try:
            return self.session.request(method, f"{self.base_url}{path}", headers=headers,
                                        timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"❌ Neynar {method} {path} failed: {e}")
            raise UpstreamError("Social graph service is unreachable.", original_error=e)

    def _raise_for_upstream(self, response: requests.Response, action: str):
        message = _error_message(response)
        logger.error(f"❌ Neynar {action} returned HTTP {response.status_code}: {message}")
        raise UpstreamError(
            f"Social graph service failed to {action} (HTTP {response.status_code}).",
        )

    def _json(self, response: requests.Response, action: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"❌ Neynar {action} returned a non-JSON body (HTTP {response.status_code})")
            raise UpstreamError(f"Social graph service sent an unreadable reply to {action}.", original_error=e)
        if not isinstance(body, dict):
            raise UpstreamError(f"Social graph service sent an unreadable reply to {action}.")
        return body

    def lookup_profile(self, handle_or_fid: Union[str, int]) -> Optional[Profile]:
        """Canonical profile for a username or fid, or None when no such user exists."""
        if isinstance(handle_or_fid, int):
            response = self._request("GET", "/v2/farcaster/user/bulk", params={"fids": str(handle_or_fid)})
            if response.status_code == 404:
                return None
            if not response.ok:
                self._raise_for_upstream(response, "look up profile")
            users = self._json(response, "look up profile").get("users") or []
            return _parse_user(users[0]) if users else None

        response = self._request("GET", "/v2/farcaster/user/by_username", params={"username": handle_or_fid})
        if response.status_code == 404:
            return None
        if not response.ok:
            self._raise_for_upstream(response, "look up profile")
        user = self._json(response, "look up profile").get("user")
        return _parse_user(user) if user else None

    def follow(self, signer_uuid: str, target_fid: int) -> FollowOutcome:
        """Follow target_fid as the user behind signer_uuid."""
        if not signer_uuid:
            raise UpstreamError("Neynar signer UUID is not configured.", code=ErrorCodes.UPSTREAM_MISCONFIGURED)

        response = self._request(
            "POST",
            "/v2/farcaster/user/follow",
            json={"signer_uuid": signer_uuid, "target_fids": [target_fid]},
        )
        if response.ok:
            body = self._json(response, "follow user")
            if body.get("success"):
                logger.info(f"✅ Followed fid {target_fid}")
                return FollowOutcome.FOLLOWED
            logger.warning(f"Follow of fid {target_fid} reported failure: {body}")
            return FollowOutcome.FAILED

        message = _error_message(response)
        if ALREADY_FOLLOWING_MARKER in message.lower():
            logger.info(f"Already following fid {target_fid}, treating as success")
            return FollowOutcome.ALREADY_FOLLOWING
        if response.status_code in (401, 403, 429) or response.status_code >= 500:
            self._raise_for_upstream(response, "follow user")
        logger.warning(f"Follow of fid {target_fid} rejected (HTTP {response.status_code}): {message}")
        return FollowOutcome.FAILED

    def verify_sign_in(self, token: str) -> Optional[SignInIdentity]:
        """Identity behind a Sign in with Neynar signer token, or None when it is not approved."""
        if not token:
            return None
        response = self._request("GET", "/v2/farcaster/signer", params={"signer_uuid": token})
        if response.status_code in (400, 404):
            return None
        if not response.ok:
            self._raise_for_upstream(response, "verify sign-in")
        body = self._json(response, "verify sign-in")
        if body.get("status") != SIGNER_APPROVED or not body.get("fid"):
            logger.warning(f"Sign-in token rejected, signer status {body.get('status')!r}")
            return None
        return SignInIdentity(fid=int(body["fid"]), signer_uuid=body.get("signer_uuid") or token)

_client: Optional[NeynarClient] = None

def get_social_graph() -> NeynarClient:
    """FastAPI dependency returning the process-wide client."""
    global _client
    if _client is None:
        _client = NeynarClient()
    return _client
