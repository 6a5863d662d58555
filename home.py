from __future__ import annotations

import streamlit as st

from shopbook.config import get_settings
from shopbook.db import get_db
from shopbook.services.statistics import dashboard_kpis

st.title("🧾 Shopbook")
st.caption("Point of sale with stock tracking, orders, and customers buying on credit.")

settings = get_settings()
db = get_db(settings.db_path)

with st.sidebar:
    st.subheader("Environment")
    st.write(f"**Data directory:** `{settings.data_dir}`")
    st.write(f"**Database:** `{settings.db_path.name}`")

kpis = dashboard_kpis(db)
c1, c2, c3, c4 = st.columns(4)
c1.metric("Total sales", f"{kpis['total_sales']:,.2f} {settings.currency}")
c2.metric("Total profit", f"{kpis['total_profit']:,.2f} {settings.currency}")
c3.metric("Orders", f"{kpis['total_orders']}")
c4.metric("Outstanding debt", f"{kpis['total_debt']:,.2f} {settings.currency}")

st.info(
    "Use the left sidebar navigation. Add products in **📦 Products**, sell in **🧾 Orders**, "
    "and put orders on credit from the order list. **🧪 Data Management** can load demo data.",
    icon="ℹ️",
)
