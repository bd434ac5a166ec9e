"""
Streamlit Frontend for the Fund Ledger

The team dashboard's finance pages: balances, income with distribution
preview, operating expenses, withdrawals and the activity log.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. The distribution is previewed before income is recorded
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No page reloads - after a change the page re-reads from the ledger

The UI never computes balances itself. Every figure comes from the
query facade and every change goes through the ledger engine.
"""

from datetime import date

import streamlit as st

from fundledger.config import get_settings, validate_all_settings
from fundledger.errors import LedgerError
from fundledger.ledger import accounting_period
from fundledger.models import (
    EMERGENCY_FUND_ID,
    SAVINGS_FUND_ID,
    Allocation,
    BalanceKind,
    BalanceView,
    format_amount,
)
from fundledger.orchestrator import AppComponents, AsyncRunner, create_app_components


# Page configuration
st.set_page_config(
    page_title="Team Fund Ledger",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_runner() -> AsyncRunner:
    """One background loop shared by every session; the engine's locks are bound to it."""
    return AsyncRunner()


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return get_runner().run(coro)


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        return create_app_components()
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def money(amount: int) -> str:
    return format_amount(amount)


def max_amount() -> int:
    return get_settings().app.max_amount


def show_ledger_error(error: LedgerError) -> None:
    """Explain a rejected operation in plain words."""
    if error.code in ("contention", "storage_unavailable"):
        st.warning(f"⏳ {error} Please try again in a moment.")
    else:
        st.error(f"❌ {error}")


def main():
    """Main application entry point."""
    components = get_components()

    # Sidebar navigation
    st.sidebar.title("💰 Team Fund Ledger")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Balances", "💵 Record Income", "🧾 Record Expense", "🏧 Withdraw", "📜 Activity", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Each month:**
        1. Record the operating expenses
        2. Record incoming payments
        3. The remainder is split automatically
        """
    )

    if components.sheets_client is None:
        st.sidebar.warning("Running without Google Sheets: data is kept in memory only.")

    # Route to appropriate page
    if page == "📊 Balances":
        render_balances_page(components)
    elif page == "💵 Record Income":
        render_income_page(components)
    elif page == "🧾 Record Expense":
        render_expense_page(components)
    elif page == "🏧 Withdraw":
        render_withdraw_page(components)
    elif page == "📜 Activity":
        render_activity_page(components)
    elif page == "⚙️ Settings":
        render_settings_page(components)


def render_balance_card(view: BalanceView) -> None:
    st.markdown(f"**{view.label}**")
    st.markdown(f'<div class="big-number">{money(view.amount)}</div>', unsafe_allow_html=True)
    with st.expander("History"):
        if not view.history:
            st.caption("No movements yet.")
        for entry in view.history:
            sign = "+" if entry.kind.value == "credit" else "-"
            note = f" · {entry.note}" if entry.note else ""
            st.caption(f"{entry.timestamp:%d %b %Y %H:%M} {sign}{money(entry.amount)}{note}")


def render_balances_page(components: AppComponents):
    """Render the balances overview."""
    st.title("📊 Balances")

    try:
        balances = run_async(components.queries.list_balances())
        status = run_async(components.queries.emergency_fund_status())
    except LedgerError as e:
        show_ledger_error(e)
        return

    if not balances:
        st.info("No balances yet. Record this month's expenses, then record an income.")
        return

    st.markdown("### Emergency fund")
    if status.target:
        st.progress(status.percent_reached / 100)
        st.caption(
            f"{money(status.total)} of {money(status.target)} ({status.percent_reached}%)"
            + (" - target reached" if status.is_met else "")
        )
    else:
        st.caption("No target set. Set one on the Settings page.")

    sections = [
        ("Team members", [v for v in balances if v.kind == BalanceKind.PARTICIPANT]),
        ("Funds", [v for v in balances if v.kind in (BalanceKind.EMERGENCY_FUND, BalanceKind.SAVINGS_FUND)]),
        ("Categories", [v for v in balances if v.kind == BalanceKind.CATEGORY]),
    ]
    for title, views in sections:
        if not views:
            continue
        st.markdown(f"### {title}")
        columns = st.columns(min(len(views), 4))
        for i, view in enumerate(views):
            with columns[i % len(columns)]:
                render_balance_card(view)


def render_allocation(allocation: Allocation) -> None:
    st.markdown(
        f"Gross {money(allocation.gross_amount)} - expenses {money(allocation.period_expense_total)} "
        f"= remainder **{money(allocation.remainder)}**"
    )
    st.table([
        {"Bucket": line.label, "Amount": money(line.amount)}
        for line in allocation.lines
    ])
    if allocation.rounding_loss:
        st.caption(f"{money(allocation.rounding_loss)} left over from rounding stays unallocated.")


def render_income_page(components: AppComponents):
    """Render the income form with a distribution preview."""
    st.title("💵 Record Income")
    st.markdown("The income minus this month's expenses is split across the funds.")

    col1, col2 = st.columns(2)
    with col1:
        gross = st.number_input("Amount", min_value=0, max_value=max_amount(), step=100_000, value=0)
        source = st.text_input("Source", placeholder="Client or project name")
    with col2:
        income_date = st.date_input("Date", value=date.today())
        note = st.text_area("Note (optional)")

    if gross > 0:
        st.markdown("### Preview")
        try:
            render_allocation(run_async(components.queries.preview_distribution(int(gross), income_date)))
        except LedgerError as e:
            show_ledger_error(e)

    if st.button("✅ Record and distribute", type="primary"):
        try:
            run_async(components.engine.record_income_with_distribution(
                gross_amount=int(gross),
                source_label=source,
                income_date=income_date,
                note=note or None,
            ))
        except LedgerError as e:
            show_ledger_error(e)
            return
        st.success(f"✅ Income of {money(int(gross))} recorded and distributed.")
        render_balances_page(components)


def render_expense_page(components: AppComponents):
    """Render the operating expense form."""
    st.title("🧾 Record Expense")

    col1, col2 = st.columns(2)
    with col1:
        amount = st.number_input("Amount", min_value=0, max_value=max_amount(), step=10_000, value=0)
        label = st.text_input("What was it for?", placeholder="Hosting, internet, ...")
    with col2:
        expense_date = st.date_input("Date", value=date.today())
        note = st.text_area("Note (optional)")

    if st.button("💾 Save expense", type="primary"):
        try:
            run_async(components.engine.record_expense(
                amount=int(amount),
                label=label,
                expense_date=expense_date,
                note=note or None,
            ))
        except LedgerError as e:
            show_ledger_error(e)
            return
        st.success(f"✅ Expense of {money(int(amount))} saved.")

    try:
        period_start, period_end = accounting_period(expense_date)
        total = run_async(components.queries.period_expense_total(expense_date))
        totals = run_async(components.queries.category_totals(
            date_from=period_start,
            date_to=period_end,
        ))
    except LedgerError as e:
        show_ledger_error(e)
        return

    st.markdown("---")
    st.markdown(f"### {expense_date:%B %Y}: {money(total)}")
    if totals:
        st.table([{"Label": name, "Total": money(value)} for name, value in totals.items()])


def render_withdraw_page(components: AppComponents):
    """Render the withdrawal form."""
    st.title("🏧 Withdraw")

    try:
        balances = run_async(components.queries.list_balances(history_limit=1))
    except LedgerError as e:
        show_ledger_error(e)
        return

    if not balances:
        st.info("Nothing to withdraw yet.")
        return

    view = st.selectbox(
        "From",
        options=balances,
        format_func=lambda v: f"{v.label} ({money(v.amount)})",
    )
    amount = st.number_input("Amount", min_value=0, max_value=max_amount(), step=10_000, value=0)
    note = st.text_input("Note (optional)")

    if view.id == SAVINGS_FUND_ID:
        st.caption("Savings can be withdrawn once the emergency fund reaches its target.")

    if st.button("🏧 Withdraw", type="primary"):
        try:
            run_async(components.engine.withdraw(view.id, int(amount), note=note or None))
            fresh = run_async(components.queries.get_balance(view.id))
        except LedgerError as e:
            show_ledger_error(e)
            return
        st.success(f"✅ Withdrew {money(int(amount))}. {fresh.label} now holds {money(fresh.amount)}.")


def render_activity_page(components: AppComponents):
    """Render the audit log."""
    st.title("📜 Activity")

    limit = st.slider("Entries", min_value=10, max_value=200, value=50, step=10)
    try:
        events = run_async(components.queries.list_audit_log(limit=limit))
    except LedgerError as e:
        show_ledger_error(e)
        return

    if not events:
        st.info("No activity yet.")
        return

    st.table([
        {
            "When": f"{event.timestamp:%d %b %Y %H:%M}",
            "Action": event.action.value,
            "Target": event.target_id,
            "Summary": event.summary,
        }
        for event in events
    ])


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Emergency fund target")
    try:
        status = run_async(components.queries.emergency_fund_status())
    except LedgerError as e:
        show_ledger_error(e)
        return

    target = st.number_input("Target", min_value=0, step=1_000_000, value=status.target)
    if st.button("💾 Save target"):
        try:
            run_async(components.engine.set_emergency_target(int(target)))
        except LedgerError as e:
            show_ledger_error(e)
            return
        st.success(f"✅ Emergency fund target set to {money(int(target))}.")

    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Ledger policy", "ledger"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - OK")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("### Distribution")
    engine = components.engine
    st.markdown(f"Policy: **{engine.policy.name}**")
    st.table([
        {"Bucket": share.label, "Share": f"{share.basis_points / 100:g}%"}
        for share in engine.policy.shares
    ])
    st.caption(f"Team: {', '.join(engine.roster)} · emergency fund id `{EMERGENCY_FUND_ID}`")


if __name__ == "__main__":
    main()
