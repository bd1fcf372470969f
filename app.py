import csv
import io
import logging

import requests
import streamlit as st

import awards
import discovery
import logging_setup
import openlibrary_client
import storage


def _secret(name, default):
    try:
        return st.secrets.get(name, default)
    except FileNotFoundError:
        return default


logging_setup.setup_logging(_secret("LOG_LEVEL", "INFO"))
logger = logging.getLogger("app")

DB_PATH = _secret("DB_PATH", None)
PAGES = ["Discover", "Liked", "Awards", "Profile"]
NO_COVER_URL = "https://via.placeholder.com/300x450?text=No+Cover"

st.set_page_config(page_title="Shelf Swipe", page_icon="📚", layout="centered")
storage.init_db(DB_PATH)

st.session_state.setdefault("user", None)
st.session_state.setdefault("genre", discovery.DEFAULT_GENRE)
st.session_state.setdefault("discovery_result", None)
st.session_state.setdefault("current_detail", None)

st.title("📚 Shelf Swipe")
st.caption("Heart it or pass. One book at a time.")


def sign_in_page():
    sign_in, register = st.tabs(["Sign in", "Register"])
    with sign_in:
        with st.form("sign-in"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in")
        if submitted:
            user = storage.authenticate_user(email, password, DB_PATH)
            if user:
                st.session_state.user = user
                st.rerun()
            else:
                st.error("Invalid email or password.")
    with register:
        with st.form("register"):
            email = st.text_input("Email", key="register-email")
            password = st.text_input("Password", type="password", key="register-password")
            submitted = st.form_submit_button("Create account")
        if submitted:
            error = storage.validate_new_password(password, password)
            if error:
                st.error(error)
                return
            user = storage.create_user(email, password, DB_PATH)
            if user:
                st.session_state.user = user
                st.rerun()
            else:
                st.error("That email is already registered.")


def current_user_id():
    user = st.session_state.user
    return user["id"] if user else None


def next_book():
    result = discovery.discover(current_user_id(), st.session_state.genre, db_path=DB_PATH)
    st.session_state.discovery_result = result
    st.session_state.current_detail = None
    if result["status"] != discovery.STATUS_FOUND:
        return
    try:
        st.session_state.current_detail = openlibrary_client.get_item_detail(
            result["item"]["external_id"]
        )
    except (RuntimeError, requests.RequestException) as exc:
        logger.warning("Could not load details for %s: %s", result["item"]["external_id"], exc)


def decide(liked):
    result = st.session_state.discovery_result
    if result and result["status"] == discovery.STATUS_FOUND:
        discovery.record_decision(current_user_id(), result["item"], liked, DB_PATH)
    next_book()


def discover_page():
    genres = list(discovery.GENRE_SLUGS)
    with st.form("genre"):
        st.selectbox("Genre", genres, key="genre")
        submitted = st.form_submit_button("Submit")
    if submitted or st.session_state.discovery_result is None:
        with st.spinner("Finding a book..."):
            next_book()

    result = st.session_state.discovery_result
    if result["status"] == discovery.STATUS_EXHAUSTED:
        st.info("No more books available in this genre :(")
        return
    if result["status"] != discovery.STATUS_FOUND:
        st.error("Open Library returned data we could not read.")
        return

    item = result["item"]
    cover_url = openlibrary_client.get_cover_url(item.get("cover_id")) or NO_COVER_URL
    st.image(cover_url, width=300)
    st.subheader(item["title"])
    st.caption(f"by {discovery.primary_creator(item)}")
    detail = st.session_state.current_detail
    st.write(detail["description"] if detail else openlibrary_client.NO_DESCRIPTION)

    pass_col, like_col = st.columns(2)
    pass_col.button("✖ Pass", on_click=decide, args=(False,), use_container_width=True)
    like_col.button("❤ Like", on_click=decide, args=(True,), use_container_width=True)


def remove_selected(external_id):
    if discovery.remove_liked(current_user_id(), external_id, DB_PATH):
        st.session_state.pop("selected_liked", None)
    else:
        st.toast("Could not remove that book.")


def liked_page():
    liked = storage.list_interactions(current_user_id(), liked=True, db_path=DB_PATH)
    if not liked:
        st.info("You have not liked any books yet.")
        return
    st.dataframe(
        [
            {"Title": book["title"], "Author": book["creator"], "Liked on": book["created_at"][:10]}
            for book in liked
        ],
        hide_index=True,
        use_container_width=True,
    )
    titles = {book["external_id"]: book["title"] for book in liked}
    selected = st.selectbox(
        "Book details",
        list(titles),
        format_func=lambda external_id: titles[external_id],
        key="selected_liked",
        index=None,
    )
    if not selected:
        return
    try:
        details = openlibrary_client.get_work_details(selected)
    except (RuntimeError, requests.RequestException) as exc:
        logger.warning("Could not load details for %s: %s", selected, exc)
        details = {"description": openlibrary_client.NO_DESCRIPTION, "cover_id": None,
                   "isbn10": "", "isbn13": "", "link": openlibrary_client.get_work_url(selected)}
    cover_url = openlibrary_client.get_cover_url(details.get("cover_id"))
    if cover_url:
        st.image(cover_url, width=200)
    st.subheader(titles[selected])
    st.write(details["description"])
    if details["isbn10"]:
        st.caption(f"ISBN-10: {details['isbn10']}")
    if details["isbn13"]:
        st.caption(f"ISBN-13: {details['isbn13']}")
    links_col, share_col = st.columns(2)
    links_col.markdown(f"[View on Open Library]({details['link']})")
    share_url = openlibrary_client.get_share_url(details["isbn10"])
    if share_url:
        share_col.markdown(f"[Share on Amazon]({share_url})")
    else:
        share_col.warning("No ISBN-10 available for sharing.")
    st.button("Remove from liked", on_click=remove_selected, args=(selected,))


def awards_page():
    outcome = awards.evaluate_awards(current_user_id(), DB_PATH)
    for award in outcome["awards"]:
        if award["award_id"] in outcome["new_award_ids"]:
            st.toast(f"New award: {award['name']}")
    st.subheader("Your earned awards")
    if not outcome["awards"]:
        st.info("You have not earned any awards yet.")
        return
    for award in outcome["awards"]:
        st.markdown(f"🏆 **{award['name']}**  \n{award['description']}")


def liked_books_csv(user_id):
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["external_id", "title", "author"])
    for book in storage.list_interactions(user_id, liked=True, db_path=DB_PATH):
        writer.writerow([book["external_id"], book["title"], book["creator"]])
    return buffer.getvalue()


def profile_page():
    user = st.session_state.user
    st.write(f"Email: {user['email']}")

    st.subheader("Change password")
    with st.form("change-password", clear_on_submit=True):
        new_password = st.text_input("New password", type="password")
        confirm_password = st.text_input("Confirm password", type="password")
        submitted = st.form_submit_button("Update password")
    if submitted:
        error = storage.validate_new_password(new_password, confirm_password)
        if error:
            st.error(error)
        elif storage.change_password(user["id"], new_password, DB_PATH):
            st.success("Password updated successfully!")
        else:
            st.error("Error updating password.")

    st.subheader("Export")
    st.download_button(
        "Download liked books (CSV)",
        liked_books_csv(user["id"]),
        file_name="liked-books.csv",
        mime="text/csv",
    )

    if st.button("Sign out"):
        st.session_state.pop("selected_liked", None)
        for key in ("user", "discovery_result", "current_detail"):
            st.session_state[key] = None
        st.rerun()


if not st.session_state.user:
    sign_in_page()
    st.stop()

with st.sidebar:
    page = st.radio("Go to", PAGES)

if page == "Discover":
    discover_page()
elif page == "Liked":
    liked_page()
elif page == "Awards":
    awards_page()
else:
    profile_page()
