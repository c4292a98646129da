"""
Streamlit Frontend for Coinpurse

DESIGN PRINCIPLES:
1. Every amount shows which currency it is in
2. Rates come from one place (the price oracle) and say where they came from
3. Clear error messages, nothing fails silently

Streamlit reruns this script on every interaction. The price oracle and
its refresh timer must outlive those reruns, so they live on one
background event loop (started once, cached with st.cache_resource) and
every async call is submitted to that loop.
"""

import asyncio
import threading
from datetime import datetime
from decimal import Decimal

import streamlit as st

from coinpurse.config import get_settings, validate_all_settings
from coinpurse.models.ledger import CurrencyCode, InvalidCurrencyError, TransactionType
from coinpurse.orchestrator import AppComponents, create_app_components
from coinpurse.services.onchain import BalanceLookupError


# Page configuration
st.set_page_config(
    page_title="Coinpurse",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)


@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """One long-lived loop on a daemon thread, shared by all sessions."""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, name="coinpurse-loop", daemon=True)
    thread.start()
    return loop


def run_async(coro):
    """Run a coroutine on the background loop and wait for its result."""
    return asyncio.run_coroutine_threadsafe(coro, get_event_loop()).result()


async def _start_scheduler(components: AppComponents) -> None:
    components.scheduler.start()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        components = create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        components = create_app_components(use_storage=False)
    run_async(_start_scheduler(components))
    return components


def get_user_id() -> str:
    return st.sidebar.text_input("User", value="demo").strip() or "demo"


def main():
    """Main application entry point."""
    components = get_components()

    st.sidebar.title("💰 Coinpurse")
    user_id = get_user_id()
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "➕ Transactions", "🎯 Budgets", "₿ Wallet", "⚙️ Settings"],
        index=0,
    )

    snapshot = components.oracle.get_current_rates()
    st.sidebar.markdown("---")
    if snapshot.is_live:
        st.sidebar.metric("BTC / USD", f"{snapshot.btc_price_usd:,.2f}", help=f"via {snapshot.source}")
    else:
        st.sidebar.warning("Live BTC price not available yet. Using fallback rates.")

    if page == "📊 Dashboard":
        render_dashboard_page(components, user_id)
    elif page == "➕ Transactions":
        render_transactions_page(components, user_id)
    elif page == "🎯 Budgets":
        render_budgets_page(components, user_id)
    elif page == "₿ Wallet":
        render_wallet_page(components)
    elif page == "⚙️ Settings":
        render_settings_page(components)


def render_dashboard_page(components: AppComponents, user_id: str):
    """Render the dashboard page."""
    st.title("📊 Dashboard")

    currencies = [c.value for c in CurrencyCode]
    default = get_settings().app.default_display_currency.upper()
    display = st.selectbox(
        "Show amounts in",
        options=currencies,
        index=currencies.index(default) if default in currencies else 0,
    )

    try:
        summary = run_async(components.reports.build_dashboard(user_id, display))
    except InvalidCurrencyError as e:
        st.error(str(e))
        return

    col1, col2, col3 = st.columns(3)
    col1.metric("Income", f"{summary.total_for(TransactionType.INCOME):,} {display}")
    col2.metric("Expenses", f"{summary.total_for(TransactionType.EXPENSE):,} {display}")
    col3.metric("Net", f"{summary.net_balance:,} {display}")

    st.markdown("### Expenses by category")
    if not summary.categories:
        st.info("No expenses recorded yet.")
    else:
        st.table([
            {"Category": c.category, f"Total ({display})": str(c.total), "Entries": c.count}
            for c in summary.categories
        ])

    source = summary.rate_source or "fallback"
    st.caption(f"Rates from {source}, BTC at {summary.btc_price_usd} USD.")


def render_transactions_page(components: AppComponents, user_id: str):
    """Render the add/list transactions page."""
    st.title("➕ Transactions")

    with st.form("new_transaction", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            tx_type = st.selectbox("Type", options=[t.value for t in TransactionType], index=1)
            category = st.text_input("Category", value="")
            description = st.text_input("Description", value="")
        with col2:
            amount = st.text_input("Amount", value="")
            currency = st.selectbox("Currency", options=[c.value for c in CurrencyCode])
            occurred = st.date_input("Date", value=datetime.utcnow().date())

        submitted = st.form_submit_button("Save")

    if submitted:
        try:
            transaction, status = run_async(components.transactions.record_transaction(
                user_id=user_id,
                category=category,
                amount=Decimal(amount.strip() or "0"),
                tx_type=tx_type,
                currency=currency,
                description=description or None,
                occurred_at=datetime.combine(occurred, datetime.min.time()),
            ))
        except Exception as e:
            st.error(f"Could not save: {e}")
        else:
            st.success(f"Saved {transaction.amount} {transaction.currency.value} in '{transaction.category}'.")
            if status and status.exceeded:
                st.warning(
                    f"Budget for '{status.budget.category}' exceeded: "
                    f"{status.spent_usd:.2f} of {status.budget.limit_usd:.2f} USD."
                )

    st.markdown("---")
    st.markdown("### Recent transactions")

    transactions = run_async(components.transactions.list_transactions(user_id, limit=50))
    if not transactions:
        st.info("No transactions yet.")
        return

    for tx in transactions:
        col1, col2, col3, col4 = st.columns([3, 2, 2, 1])
        col1.write(f"{tx.occurred_at:%Y-%m-%d} · {tx.category}" + (f" · {tx.description}" if tx.description else ""))
        col2.write(tx.type.value.title())
        col3.write(f"{tx.amount} {tx.currency.value}")
        if col4.button("Delete", key=f"delete-{tx.id}"):
            run_async(components.transactions.delete_transaction(tx.id))
            st.rerun()


def render_budgets_page(components: AppComponents, user_id: str):
    """Render the budgets page."""
    st.title("🎯 Budgets")

    with st.form("set_budget"):
        category = st.text_input("Category")
        limit = st.text_input("Limit (USD)")
        submitted = st.form_submit_button("Save budget")

    if submitted:
        try:
            budget = run_async(components.transactions.set_budget(
                user_id=user_id,
                category=category,
                limit_usd=Decimal(limit.strip() or "0"),
            ))
        except Exception as e:
            st.error(f"Could not save budget: {e}")
        else:
            st.success(f"Budget for '{budget.category}' set to {budget.limit_usd} USD.")

    st.markdown("---")
    progress = run_async(components.reports.budget_progress(user_id))
    if not progress:
        st.info("No budgets yet.")
        return

    for item in progress:
        st.markdown(f"**{item.category}**: {item.spent_usd} of {item.limit_usd} USD")
        st.progress(min(item.percent_used, 100.0) / 100.0)
        if item.exceeded:
            st.error(f"Over budget by {-item.remaining_usd} USD")


def render_wallet_page(components: AppComponents):
    """Render the on-chain wallet page."""
    st.title("₿ Wallet")
    st.markdown("Look up the balance of a Bitcoin address.")

    address = st.text_input("Address")
    display = st.selectbox("Value in", options=[c.value for c in CurrencyCode if c != CurrencyCode.SATS])

    if st.button("Check balance") and address:
        try:
            balance, value = run_async(components.wallet.get_balance(address, display))
        except BalanceLookupError as e:
            st.error(str(e))
            return

        col1, col2, col3 = st.columns(3)
        col1.metric("Confirmed", f"{balance.confirmed_sats:,} sats")
        col2.metric("Unconfirmed", f"{balance.mempool_sats:,} sats")
        col3.metric("Value", f"{value:,.2f} {display}")


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    sections = [
        ("Price providers", "price"),
        ("On-chain lookup", "onchain"),
        ("Email alerts", "notifications"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if components.sheets_client is None:
        st.warning("Running on in-memory storage. Data is lost when the app restarts.")

    st.markdown("---")
    st.markdown("### Prices")

    snapshot = components.oracle.get_current_rates()
    st.write({code.value: str(factor) for code, factor in snapshot.rates.factors.items()})
    st.caption(
        f"Source: {snapshot.source or 'fallback'} · "
        f"refreshed: {snapshot.refreshed_at or 'never'} · "
        f"scheduled refreshes: {components.scheduler.cycles}"
    )

    if st.button("Refresh now"):
        if run_async(components.scheduler.trigger()):
            st.success("Price refreshed.")
        else:
            st.error("All price providers failed. Keeping the last known price.")


if __name__ == "__main__":
    main()
