"""Demo catalog: TechStore products, help-center articles and site map.

Loaded once into an empty database (``SEED_DEMO_DATA=true``) so that every
specialist has something to work with out of the box.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from src.db.models import KBArticle, KBCategory, NavModule, NavPath, Product
from src.db.store import Store

logger = logging.getLogger(__name__)

PRODUCTS = [
    ("ProBook 14 Laptop", "Laptops", "1299.00", 12,
     "14-inch ultralight laptop with 16GB RAM and a 1TB SSD."),
    ("Creator 16 Laptop", "Laptops", "2199.00", 4,
     "16-inch laptop with a dedicated GPU for video editing and 3D work."),
    ("Tactile Pro Mechanical Keyboard", "Accessories", "149.00", 25,
     "Hot-swappable mechanical keyboard with brown switches and RGB backlight."),
    ("Silent Wireless Mouse", "Accessories", "39.00", 60,
     "Quiet-click wireless mouse with a 24-month battery life."),
    ("UltraView 27 4K Monitor", "Monitors", "449.00", 8,
     "27-inch 4K IPS monitor with USB-C power delivery."),
    ("Noise-Cancelling Headphones", "Audio", "299.00", 15,
     "Over-ear headphones with adaptive noise cancelling and 30h battery."),
    ("Studio USB Microphone", "Audio", "129.00", 0,
     "Cardioid USB condenser microphone for podcasts and streaming."),
    ("USB-C Docking Station", "Accessories", "189.00", 20,
     "Dual-display docking station with 100W pass-through charging."),
]

KB_CATEGORIES = [
    ("Orders & Shipping", "orders-shipping", "truck"),
    ("Returns & Refunds", "returns-refunds", "rotate-ccw"),
    ("Account & Billing", "account-billing", "credit-card"),
    ("Technical Help", "technical-help", "wrench"),
]

KB_ARTICLES = [
    ("orders-shipping", "How long does shipping take?",
     "Delivery times for standard and express shipping.",
     "Standard shipping takes 3-5 business days. Express shipping takes 1-2 business "
     "days. Orders placed before 2 PM EST ship the same day."),
    ("orders-shipping", "How do I track my order?",
     "Find the tracking number for a placed order.",
     "Once your order ships you receive an email with a tracking number. You can also "
     "find it under Profile > Orders. Tracking updates may take 24 hours to appear."),
    ("returns-refunds", "What is the return policy?",
     "Return window and condition requirements.",
     "Items can be returned within 30 days of delivery in their original packaging. "
     "Opened software and personalised items cannot be returned."),
    ("returns-refunds", "When will I get my refund?",
     "Refund processing times after a return is received.",
     "Refunds are issued to the original payment method within 5-7 business days "
     "after the warehouse receives and inspects the returned item."),
    ("account-billing", "How do I reset my password?",
     "Regain access to your account.",
     "Open the login page, choose 'Forgot password' and follow the link sent to your "
     "email. Reset links expire after one hour."),
    ("account-billing", "Where can I download my invoice?",
     "Invoices for completed orders.",
     "Every completed checkout generates an invoice. Download it from Profile > "
     "Invoices or ask the sales agent for your invoice number."),
    ("technical-help", "My laptop will not turn on",
     "Basic power troubleshooting steps.",
     "Connect the original charger for 30 minutes, then hold the power button for 15 "
     "seconds. If the charging light stays off, open a support ticket for a repair."),
    ("technical-help", "Bluetooth mouse is not connecting",
     "Pairing steps for wireless accessories.",
     "Switch the mouse off and on, hold the pairing button for 5 seconds, then select "
     "it in your operating system's Bluetooth settings."),
]

NAV_MODULES = [
    ("docs", "Documentation", "Technical documentation, API references and guides"),
    ("products", "Products", "Product information, features and pricing"),
    ("support", "Support", "Help center, FAQs and contact options"),
    ("account", "Account", "Profile, billing and plan settings"),
]

NAV_PATHS = [
    ("docs", "/docs/quickstart", "Getting Started Guide",
     "Quick 5-minute setup guide to get started with our platform",
     "Follow these steps: sign up for an account, generate your API key, install the "
     "SDK and make your first API call. Code examples in Python, JavaScript and Ruby.",
     ["getting started", "quickstart", "setup", "beginner", "tutorial"],
     ["Open Docs from the top navigation", "Select 'Getting Started'"],
     ["/docs/api", "/docs/authentication"]),
    ("docs", "/docs/api", "API Reference",
     "Complete API documentation with endpoints, parameters and examples",
     "Endpoints: POST /api/v1/process, GET /api/v1/status, DELETE /api/v1/cancel. "
     "Rate limits: 1000 requests/hour on the free tier, unlimited on Enterprise.",
     ["api", "reference", "endpoints", "rest", "documentation"],
     ["Open Docs from the top navigation", "Select 'API Reference' in the sidebar"],
     ["/docs/authentication", "/docs/integrations"]),
    ("docs", "/docs/integrations", "Integration Guides",
     "Step-by-step guides for popular integrations",
     "Integrate with Slack (15-minute setup), GitHub (CI/CD automation), Salesforce "
     "(CRM sync) and Zapier (no-code automation), including webhook configuration.",
     ["integrations", "slack", "github", "salesforce", "zapier", "webhooks"],
     ["Open Docs", "Select 'Integrations'", "Pick the service to connect"],
     ["/docs/api", "/docs/authentication"]),
    ("docs", "/docs/authentication", "Authentication & Security",
     "OAuth 2.0, API keys and security best practices",
     "Use API keys for server-side calls and OAuth 2.0 for user-facing apps. Rotate "
     "keys every 90 days and keep them in environment variables.",
     ["authentication", "oauth", "api keys", "security", "tokens"],
     ["Open Docs", "Select 'Authentication' in the sidebar"],
     ["/docs/api", "/account/api-keys"]),
    ("products", "/products/dev-tools", "Developer Tools",
     "SDKs, CLI tools and development resources",
     "SDKs for Python, JavaScript, Ruby and Go. A CLI for automation, a VS Code "
     "extension, GitHub Actions and a real-time debugging dashboard.",
     ["developer", "sdk", "cli", "tools", "development"],
     ["Open Products from the top navigation", "Select 'Developer Tools'"],
     ["/docs/quickstart", "/products/enterprise"]),
    ("products", "/products/enterprise", "Enterprise Platform",
     "Enterprise-grade features, dedicated support and SLA",
     "Unlimited API calls, 99.9% uptime SLA, a dedicated support team, private cloud "
     "deployment, SSO/SAML, audit logs and advanced analytics.",
     ["enterprise", "business", "sla", "dedicated", "sso"],
     ["Open Products", "Select 'Enterprise'"],
     ["/products/pricing", "/support/contact"]),
    ("products", "/products/pricing", "Pricing Plans",
     "Flexible pricing for teams of all sizes",
     "Starter $29/mo (10K API calls, 2 members), Professional $99/mo (100K calls, 10 "
     "members, priority support), Enterprise with custom pricing.",
     ["pricing", "plans", "cost", "subscription"],
     ["Open Products", "Select 'Pricing'"],
     ["/products/enterprise", "/account/billing"]),
    ("support", "/support/help", "Help Center",
     "FAQs, troubleshooting guides and common solutions",
     "Over 100 articles covering account management, billing, API errors, integration "
     "setup and performance. Search by keyword or browse by category.",
     ["help", "faq", "troubleshooting", "issues"],
     ["Open Support from the footer", "Select 'Help Center'"],
     ["/support/contact", "/docs/api"]),
    ("support", "/support/contact", "Contact Support",
     "Get in touch with our support team",
     "Email support@demo.com, live chat 9 AM - 6 PM EST, phone for Enterprise "
     "customers. Average response time is under two hours.",
     ["contact", "support", "email", "phone", "chat"],
     ["Open Support from the footer", "Select 'Contact'"],
     ["/support/help", "/products/enterprise"]),
    ("account", "/account/billing", "Billing Settings",
     "Change your plan, payment method and billing email",
     "Upgrade or downgrade your plan, update the card on file, download invoices and "
     "change the billing contact email.",
     ["billing", "payment", "plan", "invoice", "change plan"],
     ["Click your avatar in the top-right corner", "Choose 'Settings'", "Open the 'Billing' tab"],
     ["/products/pricing", "/account/api-keys"]),
    ("account", "/account/api-keys", "API Keys",
     "Create, rotate and revoke API keys",
     "Generate new keys, set expiry dates, rotate existing keys and revoke leaked "
     "ones. Each key can be scoped to read-only or full access.",
     ["api keys", "keys", "rotate", "revoke", "credentials"],
     ["Click your avatar", "Choose 'Settings'", "Open the 'API Keys' tab"],
     ["/docs/authentication", "/account/billing"]),
]


def seed_demo_data(store: Store) -> bool:
    """Populate the catalog tables when they are empty.  Returns True if seeded."""
    if not store.is_catalog_empty():
        logger.debug("Catalog already populated — skipping demo seed")
        return False

    with store.transaction() as session:
        session.add_all(
            Product(
                name=name,
                category=category,
                price=Decimal(price),
                stock_quantity=stock,
                description=description,
            )
            for name, category, price, stock, description in PRODUCTS
        )

        categories = {}
        for order, (name, slug, icon) in enumerate(KB_CATEGORIES):
            categories[slug] = KBCategory(name=name, slug=slug, icon_name=icon, display_order=order)
        session.add_all(categories.values())
        session.flush()

        session.add_all(
            KBArticle(
                category_id=categories[slug].id,
                title=title,
                description=description,
                content=content,
                display_order=order,
            )
            for order, (slug, title, description, content) in enumerate(KB_ARTICLES)
        )

        modules = {}
        for order, (slug, name, description) in enumerate(NAV_MODULES):
            modules[slug] = NavModule(slug=slug, name=name, description=description, display_order=order)
        session.add_all(modules.values())
        session.flush()

        session.add_all(
            NavPath(
                module_id=modules[slug].id,
                path=path,
                title=title,
                description=description,
                content=content,
                keywords=keywords,
                steps=steps,
                related_paths=related,
                display_order=order,
            )
            for order, (slug, path, title, description, content, keywords, steps, related)
            in enumerate(NAV_PATHS)
        )

    logger.info(
        "Seeded demo catalog: %d products, %d KB articles, %d nav paths",
        len(PRODUCTS), len(KB_ARTICLES), len(NAV_PATHS),
    )
    return True
