"""The four specialist agents and the route keys the UI addresses them by."""

from __future__ import annotations

from dataclasses import dataclass

from src.config import (
    ASSISTANT_MODEL_NAME,
    NAVIGATOR_MODEL_NAME,
    ROUTER_MODEL_NAME,
    SALES_MODEL_NAME,
    SUPPORT_MODEL_NAME,
)

ORCHESTRATOR_KEY = "orchestrator"


@dataclass(frozen=True)
class SpecialistAgent:
    """A role with a fixed tool set.

    ``key`` is the route key (``agentType`` in chat requests), ``store_type``
    is what conversation sessions record, and ``role_name`` is the display
    name.  The prompt for ``key`` lives in ``src.prompts``.
    """

    key: str
    role_name: str
    store_type: str
    description: str
    allowed_tools: tuple[str, ...]
    model: str
    icon: str = ""
    route: str = ""

    def metadata(self) -> dict:
        return {
            "key": self.key,
            "name": self.role_name,
            "description": self.description,
            "icon": self.icon,
            "route": self.route,
            "tools": list(self.allowed_tools),
        }


SALES = SpecialistAgent(
    key="sales",
    role_name="Sales Agent",
    store_type="sales_agent",
    description="E-commerce product expert for recommendations and purchases",
    allowed_tools=(
        "get_all_products",
        "search_product",
        "add_to_cart",
        "remove_from_cart",
        "clear_cart",
        "view_cart",
        "checkout",
    ),
    model=SALES_MODEL_NAME,
    icon="🛍️",
    route="/experience/sales",
)

SUPPORT = SpecialistAgent(
    key="support",
    role_name="Customer Support Agent",
    store_type="customer_support",
    description="Help desk specialist for orders, returns, and troubleshooting",
    allowed_tools=("load_knowledge_base", "create_support_ticket"),
    model=SUPPORT_MODEL_NAME,
    icon="🎧",
    route="/experience/support",
)

NAVIGATOR = SpecialistAgent(
    key="navigator",
    role_name="Website Navigator",
    store_type="website_navigator",
    description="Site guide for finding pages and understanding content",
    allowed_tools=("search_navigation", "get_page_details", "find_related_pages"),
    model=NAVIGATOR_MODEL_NAME,
    icon="🧭",
    route="/experience/navigator",
)

ASSISTANT = SpecialistAgent(
    key="assistant",
    role_name="Personal Assistant",
    store_type="personal_assistant",
    description="Productivity expert for tasks and communications",
    allowed_tools=("fetch_tasks", "manage_task", "send_email"),
    model=ASSISTANT_MODEL_NAME,
    icon="📅",
    route="/experience/assistant",
)

SPECIALISTS: tuple[SpecialistAgent, ...] = (SALES, SUPPORT, NAVIGATOR, ASSISTANT)
AGENT_MAP: dict[str, SpecialistAgent] = {s.key: s for s in SPECIALISTS}


def get_specialist(key: str | None) -> SpecialistAgent | None:
    """Direct lookup by route key; ``None`` means "let the orchestrator decide"."""
    if not key:
        return None
    return AGENT_MAP.get(key.strip().lower())

# Not a specialist: owns no tools and only hands off.  Sessions opened in
# intent mode are recorded under this type.
ORCHESTRATOR = SpecialistAgent(
    key=ORCHESTRATOR_KEY,
    role_name="Agentic Services",
    store_type="orchestrator",
    description="Routes the conversation to the right specialist",
    allowed_tools=(),
    model=ROUTER_MODEL_NAME,
)
