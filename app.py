# app.py
import os
import re
import logging

import streamlit as st
import pandas as pd

from conversation_context import ConversationContext
from gpt_engine import QueryEngine, QueryRequest
from schema_introspect import database_status, schema_drift
from schema_reference import PARTITION_KEYS

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# ===========================
# Page Setup
# ===========================
st.set_page_config(page_title="Salesforce Analytics Assistant", layout="wide")
st.markdown("<h1 style='color:#3498db;'>Salesforce Analytics Assistant</h1>", unsafe_allow_html=True)
st.markdown("Ask about reps, accounts, deals, leads and cases.")

# ===========================
# Session State Initialization
# ===========================
defaults = {
    "chat_history": [],
    "last_sql": "",
    "conversation": None,
    "engine": None,
}
for key, val in defaults.items():
    if key not in st.session_state:
        st.session_state[key] = val
if st.session_state.conversation is None:
    st.session_state.conversation = ConversationContext()
if st.session_state.engine is None:
    st.session_state.engine = QueryEngine()

# ===========================
# Sidebar: partition, new topic, status
# ===========================
with st.sidebar:
    partition_key = st.selectbox("App type", PARTITION_KEYS, index=0)
    st.session_state.conversation.bind_partition(partition_key)
    if st.button("New topic"):
        st.session_state.conversation.reset()
        st.session_state.chat_history = []
        st.session_state.last_sql = ""
    st.caption("Context active" if st.session_state.conversation.has_context() else "No context yet")

    if st.button("Check database"):
        status = database_status()
        st.write(f"Database: {status}")
        if status == "connected":
            drift = schema_drift()
            if drift:
                st.warning(f"Columns missing from the mirror: {drift}")
            else:
                st.success("Schema matches the assistant's description.")

# ===========================
# Markdown Escaping
# ===========================
def escape_md(text: str) -> str:
    """Escape $ and backticks so Streamlit won't render them as math/code; keep **bold**."""
    text = text.replace("\\", "\\\\")
    return re.sub(r'([$`])', r'\\\1', text)


def render_result(result: dict) -> str:
    """Draw chart/table for a result dict; returns the text kept in chat history."""
    if not result.get("success"):
        msg = result.get("error") or "Sorry, I couldn't process your query. Please try rephrasing it."
        st.warning(msg)
        return msg

    text = result.get("summary") or result.get("description") or ""
    if text:
        st.markdown(escape_md(text))

    data = result.get("data") or {}
    chart_type = result.get("chart_type")
    if chart_type in ("bar", "line", "pie") and data.get("labels"):
        series = data["datasets"][0]
        df = pd.DataFrame({series.get("label", "value"): series["data"]}, index=data["labels"])
        if chart_type == "line":
            st.line_chart(df)
        else:
            st.bar_chart(df)
    elif data.get("headers"):
        df = pd.DataFrame(data["rows"], columns=data["headers"])
        st.dataframe(df, use_container_width=True)

    if result.get("sql_executed"):
        with st.expander("📄 Generated SQL", expanded=False):
            st.code(result["sql_executed"], language="sql")
    return text


# ===========================
# Display Chat History
# ===========================
for msg in st.session_state.chat_history:
    with st.chat_message(msg["role"]):
        st.markdown(msg["content"])

# ===========================
# User Input
# ===========================
question = st.chat_input("Type your question here and hit Enter...")

if question:
    st.session_state.chat_history.append({"role": "user", "content": question})
    with st.chat_message("user"):
        st.markdown(question)

    with st.chat_message("assistant"):
        with st.spinner("Thinking..."):
            result = st.session_state.engine.answer(
                QueryRequest(raw_text=question, partition_key=partition_key),
                st.session_state.conversation,
            )
        response_text = render_result(result)
        st.session_state.chat_history.append({"role": "assistant", "content": escape_md(response_text)})
        st.session_state.last_sql = result.get("sql_executed", "")
