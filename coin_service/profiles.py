"""Turn user-supplied profile references into canonical Farcaster profiles."""
import logging
import re
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlparse

from common.error_handling import ErrorCodes, NotFoundError, ValidationError
from common.redis_client import RedisClient
from common.schemas import Profile

logger = logging.getLogger(__name__)

PROFILE_DOMAINS = ("farcaster.xyz", "warpcast.com")

USERNAME_RE = re.compile(r"^[a-z0-9][a-z0-9._-]{0,63}$")

FID_RE = re.compile(r"^[0-9]+$")

@dataclass(frozen=True)
class ProfileRef:
    username: Optional[str] = None
    fid: Optional[int] = None

    @property
    def lookup_key(self) -> Union[str, int]:
        return self.fid if self.fid is not None else self.username

    @property
    def cache_key(self) -> str:
        return f"fid:{self.fid}" if self.fid is not None else f"username:{self.username}"

def _invalid(reference) -> ValidationError:
    return ValidationError(
        f"Invalid profile reference: {reference!r}",
        code=ErrorCodes.INVALID_PROFILE_REFERENCE,
        field="profile_url",
    )

def _is_schemeless_link(lowered: str) -> bool:
    """True for "warpcast.com" or "warpcast.com/...", not for usernames like "warpcast.comrade"."""
    for domain in PROFILE_DOMAINS:
        for host in (domain, f"www.{domain}"):
            if lowered == host or lowered.startswith((f"{host}/", f"{host}?", f"{host}#")):
                return True
    return False

def parse_profile_ref(reference: Union[str, int]) -> ProfileRef:
    """Accepts a fid, a bare username, @handle, or a farcaster.xyz / warpcast.com link."""
    if isinstance(reference, bool):
        raise _invalid(reference)
    if isinstance(reference, int):
        if reference <= 0:
            raise _invalid(reference)
        return ProfileRef(fid=reference)

    text = (reference or "").strip()
    if not text:
        raise _invalid(reference)
    if FID_RE.match(text):
        fid = int(text)
        if fid <= 0:
            raise _invalid(reference)
        return ProfileRef(fid=fid)

    lowered = text.lower()
    if _is_schemeless_link(lowered):
        text = f"https://{text}"
        lowered = text.lower()

    if lowered.startswith(("http://", "https://")):
        parsed = urlparse(text)
        host = (parsed.hostname or "").lower()
        if host.startswith("www."):
            host = host[4:]
        if host not in PROFILE_DOMAINS:
            raise _invalid(reference)
        segments = [segment for segment in parsed.path.split("/") if segment]
        if not segments:
            raise _invalid(reference)
        # Profile links are /<username>; cast links add a hash after it
        username = segments[0]
    elif text.startswith("@"):
        username = text[1:]
    else:
        username = text

    username = username.lower()
    if not USERNAME_RE.match(username):
        raise _invalid(reference)
    return ProfileRef(username=username)

def resolve_profile(reference: Union[str, int], social_graph, cache: Optional[RedisClient] = None) -> Profile:
    """Resolve a reference through the social graph, raising NotFoundError when it has no match."""
    ref = parse_profile_ref(reference)

    if cache is not None:
        cached = cache.get_cached_profile(ref.cache_key)
        if cached is not None:
            return cached

    profile = social_graph.lookup_profile(ref.lookup_key)
    if profile is None:
        raise NotFoundError(
            f"Farcaster profile not found: {ref.lookup_key}",
            code=ErrorCodes.PROFILE_NOT_FOUND,
            field="profile_url",
        )

    logger.info(f"🔎 Resolved {ref.cache_key} to fid {profile.fid}")
    if cache is not None:
        cache.cache_profile(ref.cache_key, profile)
    return profile
