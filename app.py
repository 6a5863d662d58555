from __future__ import annotations

import streamlit as st

st.set_page_config(page_title="Shopbook", page_icon="🧾", layout="wide")

pages = [
    st.Page("home.py", title="Home", icon="🏠"),
    st.Page("pages/1_🧾_Orders.py", title="Orders", icon="🧾"),
    st.Page("pages/2_📦_Products.py", title="Products", icon="📦"),
    st.Page("pages/3_💳_Borrowers.py", title="Borrowers", icon="💳"),
    st.Page("pages/4_📊_Statistics.py", title="Statistics", icon="📊"),
    st.Page("pages/5_🧪_Data_Management.py", title="Data Management", icon="🧪"),
]

st.navigation(pages).run()
