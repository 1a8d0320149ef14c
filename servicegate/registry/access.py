"""Registry access control: source classification then shared-secret comparison."""

from __future__ import annotations

import hmac
import ipaddress
from collections.abc import Iterable, Mapping
from typing import Final

from servicegate.domain import FailurePolicy, ForbiddenError, MisconfigurationError, UnauthorizedError
from servicegate.logging import get_logger, logging_mask_secret

logger = get_logger(__name__)

REGISTRY_KEY_HEADER: Final[str] = "x-registry-key"
FORWARDED_FOR_HEADER: Final[str] = "x-forwarded-for"
REAL_IP_HEADER: Final[str] = "x-real-ip"

_DEFAULT_INTERNAL_NETWORKS: Final[tuple[str, ...]] = (
    "127.0.0.0/8",
    "::1/128",
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "169.254.0.0/16",
    "fc00::/7",
    "fe80::/10",
)
_UNKNOWN_ADDRESS: Final[str] = "unknown"


class RegistryAccessGuard:
    """Guard applied to every registry endpoint.

    Checks run in a fixed order: callers outside the internal network ranges
    are rejected as forbidden before the supplied secret is looked at.
    """

    def __init__(
        self,
        expected_key: str | None,
        policy: FailurePolicy = FailurePolicy.FAIL_CLOSED,
        extra_internal_networks: Iterable[str] = (),
    ):
        """Initialize registry access guard.

        Args:
            expected_key: Configured shared secret; None when not configured.
            policy: Behavior when the secret is not configured.
            extra_internal_networks: Additional CIDR ranges treated as internal.

        Raises:
            ValueError: Raised when a network range cannot be parsed.
        """

        self._expected_key = expected_key or None
        self._policy = FailurePolicy(policy)
        self._internal_networks = tuple(
            ipaddress.ip_network(network, strict=False)
            for network in (*_DEFAULT_INTERNAL_NETWORKS, *extra_internal_networks)
        )

    @property
    def policy(self) -> FailurePolicy:
        return self._policy

    @staticmethod
    def access_client_address(headers: Mapping[str, str], peer_host: str | None) -> str:
        """Derive the effective client address, honoring forwarding headers.

        Args:
            headers: Request headers with lowercase lookup.
            peer_host: Socket peer address, if known.

        Returns:
            str: First `x-forwarded-for` hop, else `x-real-ip`, else the peer, else `unknown`.
        """

        forwarded_for = (headers.get(FORWARDED_FOR_HEADER) or "").split(",")[0].strip()
        if forwarded_for:
            return forwarded_for
        real_ip = (headers.get(REAL_IP_HEADER) or "").strip()
        if real_ip:
            return real_ip
        return (peer_host or "").strip() or _UNKNOWN_ADDRESS

    def access_is_internal(self, address: str) -> bool:
        """Return True for loopback, private, link-local and configured network addresses."""

        if not address or address == _UNKNOWN_ADDRESS:
            return False
        clean_address = address.strip()
        if clean_address.lower().startswith("::ffff:"):
            clean_address = clean_address[len("::ffff:"):]
        if clean_address.lower() == "localhost":
            return True
        if clean_address.startswith("[") and "]" in clean_address:
            clean_address = clean_address[1:clean_address.index("]")]
        try:
            parsed_address = ipaddress.ip_address(clean_address.split("%")[0])
        except ValueError:
            logger.debug("registry_access_unparsable_address", client_ip=address)
            return False
        return any(
            parsed_address.version == network.version and parsed_address in network
            for network in self._internal_networks
        )

    def access_check(self, headers: Mapping[str, str], peer_host: str | None) -> str:
        """Run source classification, then secret comparison.

        Args:
            headers: Request headers with lowercase lookup.
            peer_host: Socket peer address.

        Returns:
            str: Effective client address that was granted access.

        Raises:
            ForbiddenError: Raised for non-internal callers, before any secret comparison.
            MisconfigurationError: Raised when no secret is configured under fail-closed policy.
            UnauthorizedError: Raised when the supplied secret is missing or wrong.
        """

        client_address = self.access_client_address(headers, peer_host)
        if not self.access_is_internal(client_address):
            logger.warning("registry_access_forbidden", client_ip=client_address)
            raise ForbiddenError("Registry access is restricted to internal network")

        supplied_key = headers.get(REGISTRY_KEY_HEADER)
        if self._expected_key is None:
            if self._policy is FailurePolicy.FAIL_OPEN:
                logger.warning("registry_access_unconfigured_passthrough", client_ip=client_address)
                return client_address
            logger.error("registry_access_unconfigured", client_ip=client_address)
            raise MisconfigurationError("Registry authentication not configured")

        if not supplied_key or not hmac.compare_digest(
            supplied_key.encode("utf-8"), self._expected_key.encode("utf-8")
        ):
            logger.warning(
                "registry_access_invalid_key",
                client_ip=client_address,
                received=logging_mask_secret(supplied_key),
            )
            raise UnauthorizedError("Invalid registry key")

        logger.debug("registry_access_granted", client_ip=client_address)
        return client_address
