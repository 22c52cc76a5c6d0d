"""
Resale payload parsing and the availability decision.
"""
import logging
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import Offer, TicketAvailabilityReport

logger = logging.getLogger(__name__)


class PricePayload(BaseModel):
    """``price`` object of a resale offer."""
    model_config = ConfigDict(extra="ignore")

    total: Optional[int] = None


class OfferPayload(BaseModel):
    """A single entry of the ``offers`` array."""
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    price: Optional[PricePayload] = None
    quantities: Optional[List[int]] = None

    def to_offer(self) -> Offer:
        return Offer(
            kind=self.type,
            price_total=self.price.total if self.price else None,
            quantities=tuple(self.quantities or ()),
        )


class ResalePayload(BaseModel):
    """Body returned by the availability service's resale endpoint.

    Offers are kept raw here and validated one by one in ``parse_offers``.
    """
    model_config = ConfigDict(extra="ignore")

    offers: List[Any] = Field(default_factory=list)


def parse_offers(data: Any) -> List[Offer]:
    """Turn a raw resale response body into offers.

    Anything that does not look like ``{"offers": [...]}`` yields no offers.
    Offers that fail validation are skipped without affecting the others.
    """
    if not isinstance(data, dict):
        return []
    try:
        payload = ResalePayload.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed resale payload: {e.error_count()} error(s)")
        return []

    offers = []
    for index, raw in enumerate(payload.offers):
        try:
            offers.append(OfferPayload.model_validate(raw).to_offer())
        except ValidationError as e:
            logger.warning(f"Skipping malformed offer #{index}: {e.error_count()} error(s)")
    return offers


def actionable_offers(offers: Sequence[Offer]) -> List[Offer]:
    """Resale offers that carry both a price and a purchasable quantity."""
    return [offer for offer in offers if offer.is_actionable]


def build_report(event_id: str, offers: Sequence[Offer]) -> Optional[TicketAvailabilityReport]:
    """Summarise the actionable offers, or return None if there are none.

    The cheapest offer is the first one with the lowest total price.
    """
    available = actionable_offers(offers)
    if not available:
        return None

    cheapest = available[0]
    for offer in available[1:]:
        if offer.price_total < cheapest.price_total:
            cheapest = offer

    return TicketAvailabilityReport(
        event_id=event_id,
        total_tickets=sum(offer.max_quantity for offer in available),
        offer_count=len(available),
        max_bundle_size=max(offer.max_quantity for offer in available),
        cheapest_price=cheapest.price_total / 100,
        cheapest_quantities=cheapest.quantities,
    )
