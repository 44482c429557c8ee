"""Sales specialist tools: TechStore catalog, cart and checkout.

Catalog reads are open to everyone.  Cart and checkout tools act on the
signed-in user's own rows and refuse to run for anonymous callers.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Literal

from langchain_core.runnables import RunnableConfig
from langchain_core.tools import tool
from pydantic import Field

from src.db.models import CartItem, Product
from src.db.store import StoreError
from src.services.mailer import validate_email
from src.tools.ranking import contains, query_words, rank
from src.tools.runtime import (
    StrictArgs,
    blank_to_none,
    fail,
    format_money,
    isoformat,
    money,
    not_signed_in,
    ok,
    tool_runtime,
)

logger = logging.getLogger(__name__)

COMPANY_NAME = "TechStore"
TAX_TOTAL = Decimal("0.00")

_STORE_UNAVAILABLE = "The store is temporarily unavailable. Please try again in a moment."


# ── Argument schemas ─────────────────────────────────────────────────


class GetAllProductsArgs(StrictArgs):
    pass


class SearchProductArgs(StrictArgs):
    name: str = Field(
        description="Product name or keyword to search for, e.g. 'laptop' or 'mechanical keyboard'",
    )


class AddToCartArgs(StrictArgs):
    product_id: str = Field(description="Id of the product, from get_all_products or search_product")
    quantity: int = Field(ge=1, description="Number of units to add")


class RemoveFromCartArgs(StrictArgs):
    product_id: str = Field(description="Id of the product to remove entirely from the cart")


class ClearCartArgs(StrictArgs):
    mode: Literal["all", "item"] = Field(
        description="'all' clears every item from the cart. 'item' removes one specific product.",
    )
    product_id: str = Field(
        description="Id of the product to remove when mode is 'item'. Use '' when mode is 'all'.",
    )


class ViewCartArgs(StrictArgs):
    pass


class CheckoutArgs(StrictArgs):
    confirm: Literal["yes"] = Field(
        description="Must be 'yes' to confirm the checkout and generate the invoice.",
    )
    billing_email: str = Field(
        description="Email for the invoice. Use '' to fall back to the user's account email.",
    )


# ── Helpers ──────────────────────────────────────────────────────────


def _product_payload(product: Product) -> dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "category": product.category,
        "price": format_money(product.price),
        "raw_price": money(product.price),
        "description": product.description or "",
        "stock_quantity": product.stock_quantity,
        "in_stock": product.stock_quantity > 0,
    }


def _availability(product: Product) -> str:
    if product.stock_quantity > 0:
        return f"In stock ({product.stock_quantity} units available)"
    return "Out of stock"


def score_product(product: Product, query: str) -> int:
    """Name 10, category word 5, description 3, per word: name 2, description 1."""
    q = query.strip().lower()
    words = query_words(query, 2)
    score = 0
    if contains(product.name, q):
        score += 10
    if any(contains(product.category, w) for w in words):
        score += 5
    if contains(product.description, q):
        score += 3
    for word in words:
        if contains(product.name, word):
            score += 2
        if contains(product.description, word):
            score += 1
    return score


def _cart_lines(items: list[CartItem]) -> tuple[list[dict[str, Any]], Decimal]:
    lines = []
    subtotal = Decimal("0")
    for item in items:
        line_total = item.product.price * item.quantity
        subtotal += line_total
        lines.append({
            "product_id": item.product_id,
            "name": item.product.name,
            "quantity": item.quantity,
            "unit_price": format_money(item.product.price),
            "line_total": format_money(line_total),
        })
    return lines, subtotal


# ── Tools ────────────────────────────────────────────────────────────


@tool("get_all_products", args_schema=GetAllProductsArgs)
def get_all_products(config: RunnableConfig) -> dict:
    """Return every product in the store with name, price, category and stock.

    Use this when the user wants to browse or see all products.
    """
    runtime = tool_runtime(config)
    try:
        products = runtime.store.list_products()
    except StoreError:
        return fail(_STORE_UNAVAILABLE, products=[])

    if not products:
        return fail("No products found in the store.", products=[])
    return ok(
        f"Found {len(products)} product(s).",
        total=len(products),
        products=[_product_payload(p) for p in products],
    )


@tool("search_product", args_schema=SearchProductArgs)
def search_product(name: str, config: RunnableConfig) -> dict:
    """Search for a product by name or keyword and check whether it is in stock.

    Use this when the user asks about a specific product, its price or its
    availability.  Results are ordered by relevance.
    """
    runtime = tool_runtime(config)
    try:
        candidates = runtime.store.find_products_by_name(name)
    except StoreError:
        return fail(_STORE_UNAVAILABLE, products=[])

    ranked = rank(candidates, lambda p: score_product(p, name))
    if not ranked:
        return fail(f'No product found matching "{name}".', products=[])

    return ok(
        f'Found {len(ranked)} product(s) matching "{name}".',
        found=len(ranked),
        products=[
            {**_product_payload(p), "availability": _availability(p), "relevance_score": score}
            for p, score in ranked
        ],
    )


@tool("add_to_cart", args_schema=AddToCartArgs)
def add_to_cart(product_id: str, quantity: int, config: RunnableConfig) -> dict:
    """Add a number of units of a product to the user's cart.

    Use the product id from get_all_products or search_product.  If the
    product is already in the cart its quantity is increased.
    """
    runtime = tool_runtime(config)
    user_id = runtime.context.user_id
    if user_id is None:
        return not_signed_in("add items to the cart")

    store = runtime.store
    try:
        with store.transaction() as session:
            product = store.get_product(product_id, for_update=True, session=session)
            if product is None:
                return fail(f"Product not found with id: {product_id}")

            existing = store.get_cart_item(user_id, product_id, session=session)
            in_cart = existing.quantity if existing else 0
            new_quantity = in_cart + quantity
            if product.stock_quantity < new_quantity:
                if in_cart:
                    detail = f"You already have {in_cart} in your cart and only "
                else:
                    detail = "Only "
                return fail(
                    f'Not enough stock. {detail}{product.stock_quantity} unit(s) of '
                    f'"{product.name}" available.',
                    available=product.stock_quantity,
                    in_cart=in_cart,
                )

            store.upsert_cart_item(user_id, product_id, new_quantity, session=session)
    except StoreError:
        return fail("I couldn't update your cart right now. Please try again.")

    logger.info("Cart %s: %s x%d (now %d)", user_id, product.id, quantity, new_quantity)
    if in_cart:
        message = f'Updated "{product.name}" quantity to {new_quantity}x in your cart.'
    else:
        message = (
            f'Added {quantity}x "{product.name}" to your cart! '
            f"Subtotal: {format_money(product.price * quantity)}."
        )
    return ok(
        message,
        product={
            "id": product.id,
            "name": product.name,
            "quantity": new_quantity,
            "price_per_unit": format_money(product.price),
            "subtotal": format_money(product.price * new_quantity),
        },
    )


def _remove_line(runtime, user_id: str, product_id: str) -> dict:
    store = runtime.store
    try:
        with store.transaction() as session:
            item = store.get_cart_item(user_id, product_id, session=session)
            if item is None:
                return fail("That product is not in your cart.")
            product_name = item.product.name if item.product else "the product"
            store.delete_cart_item(user_id, product_id, session=session)
    except StoreError:
        return fail("I couldn't update your cart right now. Please try again.")
    return ok(f'Removed "{product_name}" from your cart.')


@tool("remove_from_cart", args_schema=RemoveFromCartArgs)
def remove_from_cart(product_id: str, config: RunnableConfig) -> dict:
    """Remove a product entirely from the user's cart (all of its units)."""
    runtime = tool_runtime(config)
    user_id = runtime.context.user_id
    if user_id is None:
        return not_signed_in("modify the cart")
    return _remove_line(runtime, user_id, product_id)


@tool("clear_cart", args_schema=ClearCartArgs)
def clear_cart(mode: str, product_id: str, config: RunnableConfig) -> dict:
    """Clear every item from the user's cart, or remove one specific product.

    Always confirm with the user before clearing the entire cart.
    """
    runtime = tool_runtime(config)
    user_id = runtime.context.user_id
    if user_id is None:
        return not_signed_in("modify the cart")

    if mode == "item":
        target = blank_to_none(product_id)
        if target is None:
            return fail("product_id is required when mode is 'item'.")
        return _remove_line(runtime, user_id, target)

    try:
        removed = runtime.store.delete_cart_items(user_id)
    except StoreError:
        return fail("Failed to clear the cart. Please try again.")
    return ok("Your cart has been cleared.", removed_items=removed)


@tool("view_cart", args_schema=ViewCartArgs)
def view_cart(config: RunnableConfig) -> dict:
    """Show the items currently in the user's cart with the running subtotal."""
    runtime = tool_runtime(config)
    user_id = runtime.context.user_id
    if user_id is None:
        return not_signed_in("view the cart", items=[])

    try:
        items = runtime.store.get_cart_items(user_id)
    except StoreError:
        return fail(_STORE_UNAVAILABLE, items=[])

    if not items:
        return ok("Your cart is empty.", items=[], subtotal=format_money(0))
    lines, subtotal = _cart_lines(items)
    return ok(
        f"You have {len(lines)} product(s) in your cart.",
        items=lines,
        subtotal=format_money(subtotal),
    )


@tool("checkout", args_schema=CheckoutArgs)
def checkout(confirm: str, billing_email: str, config: RunnableConfig) -> dict:
    """Check out the user's cart and generate a TechStore invoice.

    Fetches the cart and current prices itself, stores an invoice with a
    line-item price snapshot, then empties the cart.  Call this directly
    after the user confirms; do NOT call any other tool first.
    """
    runtime = tool_runtime(config)
    user_id = runtime.context.user_id
    if user_id is None:
        return not_signed_in("checkout")

    store = runtime.store
    email = blank_to_none(billing_email)
    if email is not None:
        error = validate_email(email)
        if error:
            return fail(error)

    try:
        if email is None:
            user = store.get_user(user_id)
            email = user.email if user else None

        with store.transaction() as session:
            cart = store.get_cart_items(user_id, session=session)
            if not cart:
                return fail("Your cart is empty. Add some products before checking out.")

            lines = [
                {
                    "product_id": item.product_id,
                    "product_name": item.product.name,
                    "unit_price": item.product.price,
                    "quantity": item.quantity,
                    "total_price": item.product.price * item.quantity,
                }
                for item in cart
            ]
            subtotal = sum((line["total_price"] for line in lines), Decimal("0"))
            total = subtotal + TAX_TOTAL

            invoice = store.create_invoice(
                user_id,
                subtotal=subtotal,
                tax_total=TAX_TOTAL,
                total_amount=total,
                billing_email=email,
                session=session,
            )
            store.create_invoice_items(invoice.id, lines, session=session)
            store.delete_cart_items(user_id, session=session)
    except StoreError:
        return fail("Checkout failed and nothing was charged. Please try again.")

    invoice_number = f"INV-{invoice.invoice_number:04d}"
    logger.info("Checkout for user %s created %s (%s)", user_id, invoice_number, total)
    return ok(
        "Order placed successfully!",
        invoice={
            "invoice_number": invoice_number,
            "status": invoice.status,
            "billing_email": email or "",
            "company": COMPANY_NAME,
            "items": [
                {
                    "name": line["product_name"],
                    "quantity": line["quantity"],
                    "unit_price": format_money(line["unit_price"]),
                    "total": format_money(line["total_price"]),
                }
                for line in lines
            ],
            "subtotal": format_money(subtotal),
            "tax": format_money(TAX_TOTAL),
            "total": format_money(total),
            "created_at": isoformat(invoice.created_at),
        },
    )


SALES_TOOLS = [
    get_all_products,
    search_product,
    add_to_cart,
    remove_from_cart,
    clear_cart,
    view_cart,
    checkout,
]
