"""Channel ownership resolution.

Built once per batch from the full set of channel bindings and owner
records; every row lookup afterwards is a dict hit.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Protocol


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OwnerRecord:
    """An account entitled to a share of its channels' revenue."""

    owner_id: str
    revenue_share_percent: Decimal
    username: str = ""
    status: str = "active"


@dataclass(frozen=True)
class ChannelBinding:
    """Binds one external channel id to exactly one owner."""

    channel_external_id: str
    owner_id: str
    channel_name: Optional[str] = None


@dataclass(frozen=True)
class OwnerShare:
    """Resolved owner and share for a channel."""

    owner_id: str
    revenue_share_percent: Decimal


@dataclass(frozen=True)
class ChannelOwnership:
    """Drill-down view of a single channel's binding."""

    binding: ChannelBinding
    share: Optional[OwnerShare]

    @property
    def is_resolved(self) -> bool:
        return self.share is not None


class OwnershipSource(Protocol):
    """Read-only view of the binding/owner collaborator.

    Implementations raise OwnershipUnavailableError when unreachable.
    """

    async def fetch_bindings(self) -> list[ChannelBinding]:
        ...

    async def fetch_owners(self) -> list[OwnerRecord]:
        ...


def _valid_share(owner: OwnerRecord) -> bool:
    try:
        share = Decimal(owner.revenue_share_percent)
    except (InvalidOperation, TypeError, ValueError):
        return False
    return share.is_finite() and Decimal("0") <= share <= Decimal("100")


class OwnershipResolver:
    """Lookup from channel external id to (owner id, share percent)."""

    def __init__(
        self,
        shares: dict[str, OwnerShare],
        bindings: dict[str, ChannelBinding],
    ) -> None:
        self._shares = shares
        self._bindings = bindings

    @classmethod
    def build(
        cls,
        bindings: Iterable[ChannelBinding],
        owners: Iterable[OwnerRecord],
    ) -> "OwnershipResolver":
        """Build the lookup for one batch.

        A binding whose owner is missing, or whose owner carries an
        out-of-range share, is left unresolved. When the same channel id
        appears more than once the last binding wins.

        Args:
            bindings: Current channel -> owner bindings
            owners: Current owner records

        Returns:
            OwnershipResolver
        """
        owners_by_id: dict[str, OwnerRecord] = {}
        for owner in owners:
            if not _valid_share(owner):
                logger.warning(
                    "Owner %s has invalid revenue share %r, treating as unresolved",
                    owner.owner_id,
                    owner.revenue_share_percent,
                )
                continue
            owners_by_id[owner.owner_id] = owner

        binding_map: dict[str, ChannelBinding] = {}
        shares: dict[str, OwnerShare] = {}
        dangling = 0

        for binding in bindings:
            binding_map[binding.channel_external_id] = binding
            owner = owners_by_id.get(binding.owner_id)
            if owner is None:
                shares.pop(binding.channel_external_id, None)
                dangling += 1
                continue
            shares[binding.channel_external_id] = OwnerShare(
                owner_id=owner.owner_id,
                revenue_share_percent=Decimal(owner.revenue_share_percent),
            )

        if dangling:
            logger.warning("%s channel bindings reference missing owners", dangling)

        logger.debug(
            "Ownership resolver built: %s bindings, %s resolvable",
            len(binding_map),
            len(shares),
        )
        return cls(shares, binding_map)

    def resolve(self, channel_external_id: str) -> Optional[OwnerShare]:
        """Return the owner share for a channel, or None when orphaned."""
        return self._shares.get(channel_external_id)

    def for_channel(self, channel_external_id: str) -> Optional[ChannelOwnership]:
        """Scoped lookup for channel drill-down reporting."""
        binding = self._bindings.get(channel_external_id)
        if binding is None:
            return None
        return ChannelOwnership(
            binding=binding,
            share=self._shares.get(channel_external_id),
        )

    def channel_ids_for_owner(self, owner_id: str) -> list[str]:
        return sorted(
            channel_id
            for channel_id, share in self._shares.items()
            if share.owner_id == owner_id
        )

    def __len__(self) -> int:
        return len(self._shares)
