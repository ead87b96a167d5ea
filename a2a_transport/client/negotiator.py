"""Transport negotiation against an agent card."""

from typing import Dict, Optional

from ..errors import NoCompatibleTransport
from ..types import AgentCard, NegotiationResult
from ..utils.config import ClientConfig
from ..utils.logging import get_logger

logger = get_logger("negotiation")


class TransportNegotiator:
    """Picks the transport (and its URL) used to talk to an agent.

    Results are cached per card URL for the negotiator's lifetime.
    """

    def __init__(self, config: ClientConfig):
        self.config = config
        self._cache: Dict[str, NegotiationResult] = {}

    def negotiate(self, card: AgentCard) -> NegotiationResult:
        cached = self._cache.get(card.url)
        if cached is not None:
            return cached

        transport = self._select_transport(card)
        if transport is None:
            logger.warning("transport_negotiation_failed",
                           client_transports=self.config.supported_transports,
                           agent_transports=card.transports())
            raise NoCompatibleTransport(
                f"No compatible transport for {card.url}: client supports "
                f"{self.config.supported_transports}, agent offers {card.transports()}"
            )

        result = NegotiationResult(transport=transport, endpoint_url=self.endpoint_url(card, transport))
        self._cache[card.url] = result
        logger.info("transport_negotiated",
                    agent_url=card.url,
                    transport=result.transport,
                    endpoint_url=result.endpoint_url)
        return result

    def _select_transport(self, card: AgentCard) -> Optional[str]:
        if self.config.use_client_preference:
            preferred = self.config.preferred_transport
            if self.agent_supports(card, preferred):
                return preferred

        for transport in self.config.supported_transports:
            if self.agent_supports(card, transport):
                return transport

        if self.config.supports_transport(card.preferred_transport):
            return card.preferred_transport
        return None

    @staticmethod
    def agent_supports(card: AgentCard, transport: str) -> bool:
        if card.preferred_transport == transport:
            return True
        return any(interface.transport == transport for interface in card.additional_interfaces)

    @staticmethod
    def endpoint_url(card: AgentCard, transport: str) -> str:
        if card.preferred_transport == transport:
            return card.url
        for interface in card.additional_interfaces:
            if interface.transport == transport:
                return interface.url
        return card.url

    def clear_cache(self):
        self._cache.clear()
