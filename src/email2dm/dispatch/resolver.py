"""Recipient address to platform destination resolution."""

import logging
from email.utils import parseaddr

from email2dm.dispatch.exceptions import MalformedAddress, NoRecipient, UnsupportedPlatform
from email2dm.platforms.adapters import CLIENT_CLASSES
from email2dm.platforms.models import PlatformIdentifier, PlatformType

logger = logging.getLogger(__name__)


class AddressResolver:
    """Decodes ``<identifier>@<platform>`` recipient addresses.

    Only the first envelope recipient is considered; any others are
    ignored. Identifier syntax is checked by the platform client class,
    but no network lookups happen here.
    """

    def __init__(self, domains: dict[str, str] | None = None) -> None:
        """
        Initialize the resolver.

        Args:
            domains: Extra domain aliases mapped to platform names,
                e.g. {"tg.example.com": "telegram"}.
        """
        self._domains: dict[str, PlatformType] = {p.value: p for p in PlatformType}
        for alias, platform in (domains or {}).items():
            self._domains[alias.lower()] = PlatformType(platform)

    @property
    def domains(self) -> dict[str, PlatformType]:
        """Domain to platform table, including aliases."""
        return dict(self._domains)

    def resolve(self, recipients: list[str]) -> PlatformIdentifier:
        """
        Resolve the first recipient to a platform identifier.

        Args:
            recipients: Envelope recipients in the order received.

        Returns:
            Platform, raw local part and the identifier shape it matched.

        Raises:
            NoRecipient: If the list is empty.
            MalformedAddress: If the first recipient is not local@domain.
            UnsupportedPlatform: If the domain names no known platform.
            InvalidIdentifier: If the local part is invalid for the platform.
        """
        if not recipients:
            raise NoRecipient()

        first = recipients[0]
        if len(recipients) > 1:
            logger.debug(f"Ignoring {len(recipients) - 1} additional recipients after {first}")

        address = parseaddr(first)[1] if "<" in first else first.strip()
        if address.count("@") != 1:
            raise MalformedAddress(first)
        local, domain = address.split("@")
        if not local or not domain:
            raise MalformedAddress(first)

        platform = self._domains.get(domain.lower())
        if platform is None:
            raise UnsupportedPlatform(domain)

        kind = CLIENT_CLASSES[platform].validate_identifier(local)
        return PlatformIdentifier(platform=platform, raw=local, kind=kind)
