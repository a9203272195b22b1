from typing import Iterator, Optional

from fastapi import Depends, Header, Request
from fastapi.dependencies.models import Dependant

from core.config import Settings, get_settings
from core.errors import unauthorized
from security.jwt import Identity, TokenVerifier


def get_token_verifier(cfg: Settings = Depends(get_settings)) -> TokenVerifier:
    return TokenVerifier.from_settings(cfg)


def get_optional_identity(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Optional[Identity]:
    return verifier.verify(authorization)


def get_current_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise unauthorized()
    return identity


def get_checkout_identity(
    identity: Optional[Identity] = Depends(get_optional_identity),
    cfg: Settings = Depends(get_settings),
) -> Optional[Identity]:
    """Identity for order placement; ``None`` only for guests when guest checkout is on."""
    if identity is None and not cfg.ALLOW_GUEST_CHECKOUT:
        raise unauthorized()
    return identity


def _dependency_calls(dependant: Optional[Dependant]) -> Iterator:
    if dependant is None:
        return
    for sub in dependant.dependencies:
        yield sub.call
        yield from _dependency_calls(sub)


def is_unauthenticated_call(request: Request) -> bool:
    """True when the matched route needs a caller identity and the request has none.

    Used where the request never reached the route's dependencies, e.g. a body
    that could not be parsed.
    """
    route = request.scope.get("route")
    calls = set(_dependency_calls(getattr(route, "dependant", None)))
    cfg = get_settings()
    if get_current_identity in calls:
        needs_identity = True
    elif get_checkout_identity in calls:
        needs_identity = not cfg.ALLOW_GUEST_CHECKOUT
    else:
        needs_identity = False
    if not needs_identity:
        return False
    return TokenVerifier.from_settings(cfg).verify(request.headers.get("Authorization")) is None
