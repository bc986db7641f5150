"""Intelligence producers: the boundary to research, extraction and parsing services.

Every producer is invoked the same way, ``invoke(name, payload) -> fragment``.
The core only cares about the fragment's shape and the source tier its
producer name maps to.

- HttpIntelligenceProducer: POSTs to ``{base_url}/{name}``
- ProducerFake: deterministic, instant scenarios for tests and local dev
"""

import asyncio
import copy
from typing import Protocol, runtime_checkable

import httpx

from consultflow.core.exceptions import ProducerError
from consultflow.domain.precedence import SourceTier

PRODUCER_SOURCES: dict[str, SourceTier] = {
    "market_research": SourceTier.MARKET_RESEARCH,
    "demo_chat": SourceTier.DEMO_CHAT,
    "website_extraction": SourceTier.WEBSITE_EXTRACTION,
    "brand_guide": SourceTier.BRAND_GUIDE,
}


def source_for(producer_name: str) -> SourceTier:
    try:
        return PRODUCER_SOURCES[producer_name]
    except KeyError:
        raise ValueError(f"Unknown producer: {producer_name}. Valid producers: {set(PRODUCER_SOURCES)}") from None


@runtime_checkable
class IntelligenceProducer(Protocol):
    """Protocol for every intelligence producer."""

    async def invoke(self, name: str, payload: dict) -> dict:
        """Run producer ``name`` and return its fragment.

        Raises:
            ProducerError: On any failure; callers treat it as non-fatal
        """
        ...


class HttpIntelligenceProducer:
    """Calls producers exposed over HTTP by the generation/scraping services."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def invoke(self, name: str, payload: dict) -> dict:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.post(f"/{name}", json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProducerError(name, f"HTTP {exc.response.status_code}") from exc
        except httpx.TimeoutException as exc:
            raise ProducerError(name, "timed out") from exc
        except httpx.HTTPError as exc:
            raise ProducerError(name, str(exc) or type(exc).__name__) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise ProducerError(name, "response was not JSON") from exc

        fragment = data.get("fragment", data) if isinstance(data, dict) else None
        if not isinstance(fragment, dict):
            raise ProducerError(name, "response did not contain a fragment object")
        return fragment


class ProducerFake:
    """Scenario-based test double for the IntelligenceProducer protocol.

    Scenarios:
    - happy_path: every producer returns a realistic fragment
    - producer_failure: every producer raises ProducerError
    - partial: market research fails, the rest succeed
    """

    VALID_SCENARIOS = {"happy_path", "producer_failure", "partial"}

    FRAGMENTS: dict[str, dict] = {
        "market_research": {
            "market": {
                "buyer_persona": "Operations leaders at 50-200 person B2B firms",
                "market_size": "$4.2B",
                "pain_points": ["Manual reporting", "Slow month-end close"],
                "common_objections": ["Switching cost", "Data security"],
                "design_conventions": {"layout": "long-form with proof blocks", "imagery": "product screenshots"},
            },
        },
        "demo_chat": {
            "consultation": {
                "industry": "SaaS",
                "target_audience": "CFOs at mid-market companies",
                "pain_points": ["Month-end close takes two weeks"],
            },
        },
        "website_extraction": {
            "consultation": {
                "business_name": "Northwind Ledger",
                "authority_markers": ["SOC 2 Type II", "Trusted by 300 finance teams"],
            },
            "brand": {
                "logo_url": "https://northwind.example/logo.svg",
                "primary_color": "#0F766E",
                "heading_font": "Playfair Display",
            },
        },
        "brand_guide": {
            "brand": {
                "primary_color": "#1D4ED8",
                "secondary_color": "#F59E0B",
                "heading_font": "Montserrat",
                "body_font": "Source Sans Pro",
                "guide_provided": True,
            },
        },
    }

    def __init__(self, scenario: str = "happy_path", delays: dict[str, float] | None = None):
        """Initialize with a named scenario.

        Args:
            scenario: One of 'happy_path', 'producer_failure', 'partial'
            delays: Optional per-producer sleep, to control completion order in tests

        Raises:
            ValueError: If scenario is not recognized
        """
        if scenario not in self.VALID_SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario}. Valid scenarios: {self.VALID_SCENARIOS}")
        self.scenario = scenario
        self.delays = delays or {}
        self.calls: list[tuple[str, dict]] = []

    async def invoke(self, name: str, payload: dict) -> dict:
        self.calls.append((name, payload))

        delay = self.delays.get(name)
        if delay:
            await asyncio.sleep(delay)

        if self.scenario == "producer_failure":
            raise ProducerError(name, "upstream service unavailable")
        if self.scenario == "partial" and name == "market_research":
            raise ProducerError(name, "research provider rate limited")

        if name not in self.FRAGMENTS:
            raise ProducerError(name, "unknown producer")
        return copy.deepcopy(self.FRAGMENTS[name])
