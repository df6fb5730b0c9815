"""Admin authorization for the relay control plane."""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import Forbidden

if TYPE_CHECKING:
    from .service import RelayService


@dataclass(frozen=True)
class Principal:
    """The caller of one control-plane request."""

    ip: str | None
    is_admin: bool = False
    username: str | None = None


class AdminGate:
    """
    Decides whether a control-plane caller is an administrator.

    Handles:
    - Trusted admin addresses (by default, loopback only)
    - An optional shared admin token
    - The require_admin guard every mutating operation runs first
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("roomrelay.trust")

        self._admin_ips: set[str] = set()
        self._admin_token: str | None = None

    def load_from_config(
        self, admin_ips: tuple[str, ...] | None, admin_token: str | None
    ) -> None:
        self._admin_ips = {str(ip).strip() for ip in (admin_ips or ()) if str(ip).strip()}
        self._admin_token = admin_token or None

    def is_trusted_ip(self, ip: str | None) -> bool:
        return bool(ip) and ip in self._admin_ips

    def token_matches(self, token: str | None) -> bool:
        if not token or not self._admin_token:
            return False
        return hmac.compare_digest(token.encode("utf-8"), self._admin_token.encode("utf-8"))

    def principal_for(
        self, ip: str | None, *, token: str | None = None, username: str | None = None
    ) -> Principal:
        return Principal(
            ip=ip,
            is_admin=self.is_trusted_ip(ip) or self.token_matches(token),
            username=username,
        )

    def require_admin(self, principal: Principal) -> None:
        if principal.is_admin:
            return
        self.hub.stats_manager.inc("forbidden")
        self.log.warning("Forbidden control-plane call ip=%s", principal.ip or "-")
        raise Forbidden("Forbidden")

    def get_stats(self) -> dict[str, int]:
        return {
            "admin_ips": len(self._admin_ips),
            "admin_token": 1 if self._admin_token else 0,
        }
