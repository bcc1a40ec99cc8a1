import uuid

import streamlit as st

from chat_client import call_chat, call_upload, clear_server_memory, compose_user_message

# -----------------------------
# STREAMLIT UI
# -----------------------------

st.set_page_config(page_title="ChatGPT Clone", page_icon="💬")

st.title("💬 ChatGPT Clone")

if "messages" not in st.session_state:
    st.session_state.messages = []

if "user_id" not in st.session_state:
    st.session_state.user_id = f"user-{uuid.uuid4().hex[:8]}"

if "uploader_key" not in st.session_state:
    st.session_state.uploader_key = 0


# -----------------------------
# SIDEBAR
# -----------------------------
with st.sidebar:
    st.header("Chats")

    st.session_state.user_id = st.text_input("User ID", value=st.session_state.user_id)
    user_id = st.session_state.user_id.strip()

    if st.button("➕ New Chat"):
        st.session_state.messages = []
        st.rerun()

    if st.button("🧹 Clear memory"):
        try:
            deleted = clear_server_memory(user_id)
            st.success(f"Cleared {deleted} memory entries.")
        except Exception as e:
            st.error(f"❌ Could not clear memory: {e}")

    st.markdown("---")
    uploaded_file = st.file_uploader(
        "📎 Attach a file",
        key=f"uploader_{st.session_state.uploader_key}",
    )
    # chat_input never submits an empty string, so a file alone goes through here
    send_file = st.button("📤 Send file", disabled=uploaded_file is None)


# -----------------------------
# CHAT DISPLAY
# -----------------------------
chat_container = st.container()

with chat_container:
    for msg in st.session_state.messages:
        with st.chat_message(msg["role"]):
            st.markdown(msg["content"])
            if msg.get("file_url"):
                st.markdown(f"[📎 {msg.get('file_name') or 'View Uploaded File'}]({msg['file_url']})")


# -----------------------------
# INPUT AREA
# -----------------------------
user_input = st.chat_input("Send a message or upload a file...")

if (user_input and user_input.strip()) or (send_file and uploaded_file is not None):
    if not user_id:
        st.error("❌ Please enter a user ID in the sidebar.")
        st.stop()

    upload = None
    if uploaded_file is not None:
        try:
            with st.spinner("Uploading..."):
                upload = call_upload(uploaded_file.name, uploaded_file.getvalue(), uploaded_file.type)
            if upload.get("ai_summary"):
                st.info(f"**AI Summary:** {upload['ai_summary']}")
        except Exception as e:
            st.error(f"❌ {e}")
        finally:
            st.session_state.uploader_key += 1

    text = compose_user_message(user_input, upload)

    if text:
        turn = {"role": "user", "content": text}
        st.session_state.messages.append(
            dict(
                turn,
                file_url=upload.get("file_url") if upload else None,
                file_name=upload.get("file_name") if upload else None,
            )
        )

        with chat_container:
            with st.chat_message("user"):
                st.markdown(text)

        try:
            with st.spinner("Thinking..."):
                reply = call_chat(user_id, [turn])

            st.session_state.messages.append({"role": "assistant", "content": reply})
            with chat_container:
                with st.chat_message("assistant"):
                    st.markdown(reply)

        except Exception as e:
            st.error(f"❌ Error contacting backend: {e}")
