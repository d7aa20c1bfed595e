"""
Streamlit UI for the dispensary pricing engine.

Features:
- Register tab: cart priced live by the shared engine, staff discounts, loyalty
- TV menu preview with badges and tier price lists
- Active promotions for the selected vendor
- System status and catalog report
"""
import json
import subprocess
import sys
from datetime import datetime

import pandas as pd
import streamlit as st

from dispensary_pricing.config.log_setup import setup_logging
from dispensary_pricing.services.pricing_service import PricingService
from dispensary_pricing.surfaces.pos import PosRegister


st.set_page_config(
    page_title="Dispensary Pricing",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_resource
def get_service():
    """Get cached pricing service."""
    setup_logging()
    return PricingService()


try:
    service = get_service()
    settings = service.settings
except Exception as e:
    st.error(f"System Error: {e}")
    st.stop()


# ============================================================================
# CUSTOM CSS & STYLING
# ============================================================================
st.markdown("""
    <style>
        .block-container {
            padding-top: 2rem;
            padding-bottom: 2rem;
        }
        .stMetric {
            background-color: #f0f2f6;
            padding: 10px;
            border-radius: 5px;
            border-left: 5px solid #2e7d32;
        }
    </style>
""", unsafe_allow_html=True)


def _register_for(vendor_id: str) -> PosRegister:
    """One register per browser session, reopened when the vendor changes."""
    register = st.session_state.get('register')
    if register is None or register.session.vendor_id != vendor_id:
        if register is not None:
            register.close()
        register = PosRegister(
            vendor_id=vendor_id,
            channel=service.channel,
            promotions=service.promotions_for_vendor(vendor_id),
            tax_rate=settings.tax_rate,
            clock=service.clock,
        )
        st.session_state.register = register
    return register


# ============================================================================
# SIDEBAR: Vendor Context
# ============================================================================
with st.sidebar:
    st.header("🏪 Vendor")

    vendors = service.vendor_ids() or ["default"]
    default_index = vendors.index(settings.default_vendor_id) if settings.default_vendor_id in vendors else 0
    vendor_id = st.selectbox("Vendor", vendors, index=default_index)

    active = service.active_promotions(vendor_id=vendor_id)
    if active:
        st.success(f"🏷️ **{len(active)} Promotions Active**")
    else:
        st.info("No promotions active right now")

    if service.load_errors:
        for err in service.load_errors:
            st.warning(err)

    st.divider()
    if st.button("🔄 Reload Data", use_container_width=True):
        delivered = service.reload_data()
        st.toast(f"Reloaded; {delivered} open cart(s) re-priced")
        st.rerun()

register = _register_for(vendor_id)


# ============================================================================
# MAIN CONTENT: TABBED INTERFACE
# ============================================================================
st.title("Dispensary Pricing")
st.caption(f"Register · Storefront · TV Menus | {datetime.now().strftime('%Y-%m-%d %H:%M')} ({settings.timezone})")

tab1, tab2, tab3, tab4 = st.tabs(["🧾 Register", "📺 TV Menu", "🏷️ Promotions", "📊 System"])


# ============================================================================
# TAB 1: REGISTER
# ============================================================================
with tab1:
    vendor_products = [
        p for p in service.products.values()
        if not p.vendor_id or p.vendor_id == vendor_id
    ]

    col1, col2 = st.columns([1.8, 1.2], gap="large")

    with col1:
        st.subheader("Add Items")

        with st.container(border=True):
            labels = {f"{p.id} | {p.name}": p.id for p in vendor_products}
            selected = st.selectbox(
                "Search Product",
                options=list(labels),
                index=None,
                label_visibility="collapsed",
                placeholder="Type to search product...",
            )

            c1, c2 = st.columns([1, 4])
            with c1:
                quantity = st.number_input("Qty", min_value=0.5, value=1.0, step=0.5, key="single_qty")
            with c2:
                st.write("")
                st.write("")
                if st.button("➕ Add to Cart", type="primary"):
                    if selected:
                        register.add_to_cart(service.get_product(labels[selected]), quantity)
                        st.rerun()

        if selected:
            with st.expander("🔍 Pricing Details"):
                calc = service.price(labels[selected], quantity)
                st.code(calc.get_trace_text())
                for warning in calc.warnings:
                    st.warning(warning)

    with col2:
        st.subheader("Cart Summary")

        with st.container(border=True):
            lines = register.session.cart.lines
            if lines:
                loyalty_points = st.number_input("Loyalty points", min_value=0, value=0, step=10)
                point_value = st.number_input("Point value ($)", min_value=0.0, value=0.01, step=0.01, format="%.2f")
                totals = register.totals(loyalty_points, point_value)

                m1, m2 = st.columns(2)
                m1.metric("Total", f"${totals.total:,.2f}")
                m2.metric("Items", f"{totals.item_count:g}")

                st.caption(f"Subtotal ${totals.subtotal:,.2f} · Tax ${totals.tax:,.2f}")
                if totals.promotion_discount > 0:
                    st.markdown(f":green[**Promotions Save: ${totals.promotion_discount:,.2f}**]")
                if totals.manual_discount > 0:
                    st.caption(f"Staff discounts: ${totals.manual_discount:,.2f}")
                if totals.loyalty_discount > 0:
                    st.caption(f"Loyalty redeemed: ${totals.loyalty_discount:,.2f}")

                st.divider()

                btn_col1, btn_col2 = st.columns(2)
                with btn_col1:
                    if st.button("💳 Checkout", type="primary", use_container_width=True):
                        summary = register.checkout(loyalty_points, point_value)
                        st.session_state.last_receipt = summary
                        register.close()
                        st.session_state.register = None
                        st.rerun()
                with btn_col2:
                    if st.button("🗑️ Clear", use_container_width=True):
                        register.session.clear()
                        st.rerun()
            else:
                st.info("🛒 Cart is empty")
                st.caption("Search for a product to start a sale.")

    receipt = st.session_state.get('last_receipt')
    if receipt is not None:
        st.success(f"Last sale {receipt.session_id}: ${receipt.totals.total:,.2f}")

    # Editable line items (full width)
    if register.session.cart.lines:
        st.markdown("### 📝 Line Items")

        display = pd.DataFrame([{
            'Product': line.product_id,
            'Name': line.product_name,
            'Quantity': line.quantity,
            'Tier': line.tier_label or "",
            'Was': f"${line.original_price:.2f}" if line.original_price is not None else "",
            'Unit Price': f"${line.unit_price:.2f}",
            'Badge': line.badge_text or "",
            'Staff Discount': f"${line.manual_discount_amount:.2f}" if line.manual_discount_amount else "",
            'Line Total': f"${line.line_total:.2f}",
        } for line in register.session.cart.lines])

        edited_df = st.data_editor(
            display,
            use_container_width=True,
            column_config={
                "Quantity": st.column_config.NumberColumn("Quantity", min_value=0, step=0.5),
            },
            disabled=[c for c in display.columns if c != 'Quantity'],
            hide_index=True,
            key="cart_editor"
        )

        if st.button("💾 Update Quantities"):
            for _, row in edited_df.iterrows():
                register.update_quantity(row['Product'], float(row['Quantity']))
            st.rerun()

        with st.expander("✂️ Staff Discount"):
            d1, d2, d3 = st.columns([2, 1, 1])
            with d1:
                target = st.selectbox("Line", [line.product_id for line in register.session.cart.lines])
            with d2:
                kind = st.selectbox("Type", ["percentage", "amount"])
            with d3:
                value = st.number_input("Value", min_value=0.0, value=10.0, step=1.0)
            if st.button("Apply Discount"):
                try:
                    register.apply_manual_discount(target, kind, value)
                    st.rerun()
                except ValueError as e:
                    st.error(str(e))


# ============================================================================
# TAB 2: TV MENU PREVIEW
# ============================================================================
with tab2:
    st.subheader("📺 Menu Board Preview")

    all_categories = sorted({c for p in service.products.values() for c in p.all_categories()})
    chosen = st.multiselect("Categories", all_categories)
    entries = service.menu(categories=chosen or None, vendor_id=vendor_id)

    rows = []
    for entry in entries:
        promo = entry.promotion_data or {}
        rows.append({
            'Category': entry.category or "",
            'Product': entry.name,
            'Price': f"${entry.price:.2f}",
            'Was': f"${promo['originalPrice']:.2f}" if promo.get('originalPrice') is not None else "",
            'Badge': promo.get('badgeText') or "",
            'Tiers': " · ".join(f"{t.label} ${t.final_price:.2f}" for t in entry.tier_prices),
        })

    if rows:
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True, height=500)
    else:
        st.info("No products for this menu.")
    st.caption(f"Products on board: {len(entries)}")


# ============================================================================
# TAB 3: ACTIVE PROMOTIONS
# ============================================================================
with tab3:
    st.subheader("🏷️ Vendor Promotions")

    promos = service.promotions_for_vendor(vendor_id)
    active_ids = {p.id for p in active}
    if promos:
        promo_data = []
        for promo in promos:
            if promo.promotion_type == 'product':
                targets = ", ".join(promo.target_product_ids)
            elif promo.promotion_type == 'category':
                targets = ", ".join(promo.target_categories)
            elif promo.promotion_type == 'tier':
                targets = json.dumps(promo.target_tier_rules)
            else:
                targets = "all products"

            promo_data.append({
                'ID': promo.id,
                'Name': promo.name,
                'Type': promo.promotion_type,
                'Discount': f"{promo.discount_value:g}%" if promo.discount_type == 'percentage' else f"${promo.discount_value:.2f}",
                'Targets': targets,
                'Priority': promo.priority,
                'Window': f"{promo.start_time or '…'} → {promo.end_time or '…'}",
                'Active Now': "✅" if promo.id in active_ids else "",
            })
        st.dataframe(pd.DataFrame(promo_data), use_container_width=True, hide_index=True)
    else:
        st.info("No promotions for this vendor.")


# ============================================================================
# TAB 4: SYSTEM INFO
# ============================================================================
with tab4:
    st.header("System Status")

    status = service.status()
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Products", f"{status['products']:,}")
    c2.metric("Promotions", f"{status['promotions']:,}")
    c3.metric("Active Now", f"{status['active_promotions']:,}")
    c4.metric("Open Carts", f"{status['sessions']:,}")

    report_path = settings.catalog_report
    if report_path.exists():
        with open(report_path, 'r', encoding='utf-8') as f:
            report = json.load(f)

        st.divider()
        st.subheader("Catalog Report")
        metrics = report.get('metrics', {})
        r1, r2, r3 = st.columns(3)
        r1.metric("Tiered Products", f"{metrics.get('tiered_count', 0):,}")
        r2.metric("Tier Coverage", f"{metrics.get('tier_coverage_pct', 0)}%")
        r3.metric("Last Build", report.get('timestamp', '')[:10])
        for warning in report.get('warnings', []):
            st.warning(warning)

    if st.button("🔨 Rebuild", type="secondary"):
        with st.spinner("Rebuilding..."):
            subprocess.run([sys.executable, 'scripts/build_all.py'], cwd=settings.project_root, capture_output=True)
            service.reload_data()
            st.toast("Promotions compiled and catalog checked")
            st.rerun()
