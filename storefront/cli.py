"""
Interactive CLI — a terminal storefront.

┌─────────────────────────────────────────────────────────────────────────┐
│  STEP        COMMANDS                         COMPONENT                 │
├─────────────────────────────────────────────────────────────────────────┤
│  browse      products, reload                 catalog cache             │
│  cart        add, qty, remove, empty, cart    CartSynchronizer          │
│  checkout    checkout, country, region, ship  CheckoutOrchestrator      │
│  pay         submit, retry                    CheckoutOrchestrator      │
│  confirm     receipt, home                    ReceiptStore              │
└─────────────────────────────────────────────────────────────────────────┘

Run: storefront --sandbox     (in-process sandbox API)
     storefront               (hosted API, needs STOREFRONT_PUBLIC_KEY)
"""

from __future__ import annotations

import argparse
import asyncio
from contextlib import AsyncExitStack
from dataclasses import replace
from pathlib import Path

from kungfu import Ok, Error

from storefront._logging import configure_logging
from storefront._session import Storefront
from storefront.cart import CartResult
from storefront.checkout import CheckoutForm, CheckoutState, ShippingLocale
from storefront.config import StorefrontConfig
from storefront.gateway import Cart, Gateway, HttpGateway, MemoryGateway, Order, Product
from storefront.receipt import (
    FileReceiptStore,
    ReceiptStore,
    SQLAlchemyReceiptStore,
    create_receipt_database,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Help
# ═══════════════════════════════════════════════════════════════════════════════

HELP_TEXT = """
┌─────────────────────────────────────────────────────────────────────────────┐
│                              COMMANDS                                       │
├─────────────────────────────────────────────────────────────────────────────┤
│  products                   List products                                   │
│  reload                     Re-fetch the product list                       │
│  cart                       Show the cart                                   │
│  add <product> [qty]        Add a product (number or id)                    │
│  qty <line> <qty>           Set a line item's quantity (0 removes)          │
│  remove <line>              Remove a line item                              │
│  empty                      Empty the cart                                  │
│  refresh                    Re-read the cart from the server                │
├─────────────────────────────────────────────────────────────────────────────┤
│  checkout                   Start checkout (token + shipping data)          │
│  country <code>             Ship to another country                         │
│  region <code>              Ship to another state/province                  │
│  ship <option>              Choose a shipping option (number or id)         │
│  submit [key=value ...]     Place the order                                 │
│  retry                      Retry the failed checkout step                  │
├─────────────────────────────────────────────────────────────────────────────┤
│  receipt                    Show the last order                             │
│  home                       Dismiss the receipt                             │
│  help                       Show this help                                  │
│  quit                       Exit                                            │
└─────────────────────────────────────────────────────────────────────────────┘

Submit fields (defaults are sandbox values):
  firstname lastname email street city zip card month year cvc billing_zip

Examples:
  add 1 2                     → two of the first product
  submit email=me@example.com → place the order with one field changed
"""


def print_help() -> None:
    print(HELP_TEXT)


# ═══════════════════════════════════════════════════════════════════════════════
# Data Display
# ═══════════════════════════════════════════════════════════════════════════════

def print_products(products: tuple[Product, ...]) -> None:
    print("\n┌────────────────────────────────────────────────────┐")
    print("│                    PRODUCTS                        │")
    print("├────────────────────────────────────────────────────┤")
    if not products:
        print("│  (no products)                                     │")
    for n, p in enumerate(products, 1):
        print(f"│  [{n}] {p.name:28} {p.price.formatted_with_symbol:>12}    │")
    print("└────────────────────────────────────────────────────┘")


def print_cart(cart: Cart | None) -> None:
    if cart is None:
        print("\n  Cart is not loaded.")
        return
    print("\n┌────────────────────────────────────────────────────┐")
    print(f"│  CART  {cart.total_unique_items} unique, {cart.total_items} items{'':24}│")
    print("├────────────────────────────────────────────────────┤")
    if cart.is_empty:
        print("│  Your cart is empty.                               │")
    for n, li in enumerate(cart.line_items, 1):
        print(f"│  [{n}] {li.quantity}x {li.name:24} {li.line_total.formatted_with_symbol:>12}  │")
    print("├────────────────────────────────────────────────────┤")
    print(f"│  Subtotal: {cart.subtotal.formatted_with_symbol:>38}  │")
    print("└────────────────────────────────────────────────────┘")


def print_locale(locale: ShippingLocale) -> None:
    countries = ", ".join(locale.countries) or "-"
    regions = ", ".join(locale.subdivisions) or "-"
    print(f"""
┌────────────────────────────────────────────────────┐
│  SHIPPING                                          │
├────────────────────────────────────────────────────┤
│  Country: {locale.country or '-':6} of {countries:32}│
│  Region:  {locale.region or '-':6} of {regions:32}│
├────────────────────────────────────────────────────┤""")
    if not locale.options:
        print("│  (no shipping options)                             │")
    for n, o in enumerate(locale.options, 1):
        mark = "*" if o.id == locale.option_id else " "
        print(f"│ {mark}[{n}] {o.description:28} {o.price.formatted_with_symbol:>12}   │")
    print("└────────────────────────────────────────────────────┘")


def print_order(order: Order) -> None:
    c, s = order.customer, order.shipping
    print("\n╔════════════════════════════════════════════════════╗")
    print(f"║  ORDER {order.customer_reference:<44}║")
    print("╠════════════════════════════════════════════════════╣")
    print(f"║  Customer: {c.firstname + ' ' + c.lastname:<40}║")
    print(f"║  Ship to:  {s.town_city + ', ' + s.county_state + ' ' + s.country:<40}║")
    print(f"║  Shipping: {order.shipping_method:<40}║")
    print(f"║  Total:    {order.order_value.formatted_with_symbol:<40}║")
    print("╚════════════════════════════════════════════════════╝")


def print_failure(e: object) -> None:
    print(f"\n  ✗ {e}")


# ═══════════════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════════════

FORM_FIELDS: dict[str, tuple[str, str]] = {
    "firstname": ("customer", "firstname"),
    "lastname": ("customer", "lastname"),
    "email": ("customer", "email"),
    "street": ("shipping", "street"),
    "city": ("shipping", "town_city"),
    "zip": ("shipping", "postal_zip_code"),
    "card": ("payment", "card_number"),
    "month": ("payment", "expiry_month"),
    "year": ("payment", "expiry_year"),
    "cvc": ("payment", "cvc"),
    "billing_zip": ("payment", "billing_postal_zip_code"),
}


def parse_form(args: list[str], base: CheckoutForm | None = None) -> CheckoutForm:
    """Apply 'key=value' overrides to the sandbox form."""
    form = base or CheckoutForm.sample()
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or key not in FORM_FIELDS:
            raise ValueError(f"Unknown field: {arg} (expected one of {', '.join(FORM_FIELDS)})")
        section, attr = FORM_FIELDS[key]
        form = replace(form, **{section: replace(getattr(form, section), **{attr: value})})
    return form


def pick[T](items: tuple[T, ...], ref: str, ident: str = "id") -> T | None:
    """Resolve a 1-based number or an id against a listing."""
    if ref.isdigit():
        n = int(ref)
        return items[n - 1] if 1 <= n <= len(items) else None
    for item in items:
        if getattr(item, ident) == ref:
            return item
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════════════════════

def _cart_outcome(result: CartResult) -> None:
    match result:
        case Ok(cart):
            print_cart(cart)
        case Error(failed):
            print_failure(failed)


async def cmd_add(shop: Storefront, ref: str, quantity: int) -> None:
    product = pick(shop.products, ref)
    if product is None:
        print(f"  ✗ No product {ref}")
        return
    _cart_outcome(await shop.add_to_cart(product.id, quantity))


async def cmd_qty(shop: Storefront, ref: str, quantity: int) -> None:
    cart = shop.cart.cart
    line = pick(cart.line_items, ref) if cart else None
    if line is None:
        print(f"  ✗ No line item {ref}")
        return
    _cart_outcome(await shop.change_quantity(line.id, quantity))


async def cmd_remove(shop: Storefront, ref: str) -> None:
    cart = shop.cart.cart
    line = pick(cart.line_items, ref) if cart else None
    if line is None:
        print(f"  ✗ No line item {ref}")
        return
    _cart_outcome(await shop.remove_item(line.id))


async def cmd_checkout(shop: Storefront) -> None:
    match await shop.begin_checkout():
        case Ok(locale):
            print_locale(locale)
            print("\n  Choose a shipping option with 'ship <n>', then 'submit'.")
        case Error(e):
            print_failure(e)


async def cmd_locale(shop: Storefront, kind: str, code: str) -> None:
    if kind == "country":
        result = await shop.select_country(code.upper())
    else:
        result = await shop.select_region(code.upper())
    match result:
        case Ok(locale):
            print_locale(locale)
        case Error(e):
            print_failure(e)


def cmd_ship(shop: Storefront, ref: str) -> None:
    option = pick(shop.checkout.locale.options, ref)
    if option is None:
        print(f"  ✗ No shipping option {ref}")
        return
    match shop.select_shipping_option(option.id):
        case Ok(locale):
            print_locale(locale)
        case Error(e):
            print_failure(e)


async def cmd_submit(shop: Storefront, args: list[str]) -> None:
    try:
        form = parse_form(args)
    except ValueError as e:
        print_failure(e)
        return
    match await shop.submit_checkout(form):
        case Ok(order):
            print_order(order)
            print("  ✓ Order placed. Your cart has been renewed.")
        case Error(e):
            print_failure(e)
            if shop.checkout.state is CheckoutState.FAILED:
                print("  Type 'retry' to try again.")


async def cmd_retry(shop: Storefront) -> None:
    match await shop.retry_checkout():
        case Ok(Order() as order):
            print_order(order)
        case Ok(locale):
            print_locale(locale)
        case Error(e):
            print_failure(e)


async def cmd_home(shop: Storefront) -> None:
    match await shop.return_home():
        case Ok(_):
            print("  ✓ Back to the shop.")
        case Error(e):
            print_failure(e)


# ═══════════════════════════════════════════════════════════════════════════════
# Dispatch
# ═══════════════════════════════════════════════════════════════════════════════

async def dispatch(shop: Storefront, line: str) -> bool:
    """Run one command line. Returns False when the session should end."""
    parts = line.split()
    if not parts:
        return True
    cmd, args = parts[0].lower(), parts[1:]

    match cmd, args:
        case ("quit" | "exit" | "q"), _:
            print("Bye!")
            return False
        case ("help" | "h" | "?"), _:
            print_help()
        case "products", []:
            print_products(shop.products)
        case "reload", []:
            match await shop.reload_catalog():
                case Ok(products):
                    print_products(products)
                case Error(e):
                    print_failure(e)
        case "cart", []:
            print_cart(shop.cart.cart)
        case "add", [ref]:
            await cmd_add(shop, ref, 1)
        case "add", [ref, qty] if qty.lstrip("-").isdigit():
            await cmd_add(shop, ref, int(qty))
        case "qty", [ref, qty] if qty.lstrip("-").isdigit():
            await cmd_qty(shop, ref, int(qty))
        case "remove", [ref]:
            await cmd_remove(shop, ref)
        case "empty", []:
            _cart_outcome(await shop.empty_cart())
        case "refresh", []:
            _cart_outcome(await shop.refresh_cart())
        case "checkout", []:
            await cmd_checkout(shop)
        case ("country" | "region"), [code]:
            await cmd_locale(shop, cmd, code)
        case "ship", [ref]:
            cmd_ship(shop, ref)
        case "submit", _:
            await cmd_submit(shop, args)
        case "retry", []:
            await cmd_retry(shop)
        case "receipt", []:
            if shop.order is None:
                print("  No receipt stored.")
            else:
                print_order(shop.order)
        case "home", []:
            await cmd_home(shop)
        case _:
            print(f"  ✗ Unknown command or wrong arguments: {line.strip()}")
            print("  Type 'help' for available commands.")
    return True


# ═══════════════════════════════════════════════════════════════════════════════
# Main Loop
# ═══════════════════════════════════════════════════════════════════════════════

BANNER = """
╔════════════════════════════════════════════════════════════════════════════╗
║                              STOREFRONT                                    ║
╚════════════════════════════════════════════════════════════════════════════╝
"""


async def open_receipts(config: StorefrontConfig, stack: AsyncExitStack) -> ReceiptStore:
    """The engine behind a database store is disposed when the stack closes."""
    if config.receipt_db_url:
        session_factory, engine = await create_receipt_database(config.receipt_db_url)
        stack.push_async_callback(engine.dispose)
        return SQLAlchemyReceiptStore(session_factory)
    return FileReceiptStore(config.receipt_path)


def open_gateway(config: StorefrontConfig, sandbox: bool) -> Gateway:
    if sandbox:
        return MemoryGateway()
    if not config.public_key:
        raise SystemExit("STOREFRONT_PUBLIC_KEY is required (or use --sandbox)")
    return HttpGateway(config.public_key, base_url=config.api_url, timeout=config.timeout)


async def run_cli(config: StorefrontConfig, *, sandbox: bool) -> None:
    async with AsyncExitStack() as stack:
        gateway = open_gateway(config, sandbox)
        if isinstance(gateway, HttpGateway):
            stack.push_async_callback(gateway.aclose)
        shop = Storefront(gateway, await open_receipts(config, stack), config)

        print(BANNER)
        state = await shop.start()
        if state.merchant:
            print(f"  Welcome to {state.merchant.name}")
        for source, error in state.errors.items():
            print(f"  ⚠️  {source} unavailable: {error}")
        print_help()
        print_products(state.products)
        if state.order is not None:
            print("\n  Your last order:")
            print_order(state.order)

        while True:
            try:
                line = await asyncio.to_thread(input, "\n> ")
            except (EOFError, KeyboardInterrupt):
                print("\nBye!")
                break
            if not await dispatch(shop, line):
                break


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storefront", description="Terminal storefront")
    parser.add_argument("--sandbox", action="store_true", help="use the in-process sandbox API")
    parser.add_argument("--receipt", type=Path, help="receipt file (overrides STOREFRONT_RECEIPT_PATH)")
    parser.add_argument("--log-level", help="overrides STOREFRONT_LOG_LEVEL")
    parser.add_argument("--log-json", action="store_true", help="JSON log lines")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = StorefrontConfig.from_env()
    if args.receipt is not None:
        config = replace(config, receipt_path=args.receipt)
    configure_logging(args.log_level or config.log_level, json=args.log_json or config.log_json)
    asyncio.run(run_cli(config, sandbox=args.sandbox))


if __name__ == "__main__":
    main()
