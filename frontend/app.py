# frontend/app.py
import asyncio
from datetime import datetime

import streamlit as st
from dotenv import load_dotenv

from backend.config import load_settings
from backend.db import Store, init_db, make_engine
from backend.errors import StudyTreeError
from navigator.annotate import navigable_items
from navigator.client import GenerationClient
from navigator.quiz import feedback, parse_quiz
from navigator.tree import NavigationController, SubView, View

load_dotenv()

st.set_page_config(page_title="Study Tree", layout="wide")


@st.cache_resource
def get_store():
    settings = load_settings()
    return Store(init_db(make_engine(settings.database_url)))


def get_controller() -> NavigationController:
    if "controller" not in st.session_state:
        settings = load_settings()
        st.session_state.controller = NavigationController(
            GenerationClient(settings.fastapi_url), get_store(), user_id=settings.user_id
        )
        st.session_state.log_lines = []
        st.session_state.opened_at = datetime.utcnow()
    return st.session_state.controller


controller = get_controller()

# Sidebar: activity log
st.sidebar.header("📋 Activity")
log_container = st.sidebar.empty()


def log(msg):
    ts = datetime.utcnow().isoformat(timespec='seconds')
    st.session_state.log_lines.append(f"{ts} | {msg}")
    log_container.text("\n".join(st.session_state.log_lines[-100:]))


log_container.text("\n".join(st.session_state.log_lines[-100:]))

# Live view of the fragment being generated
live = st.empty()


def run(label, operation, *args):
    """Run one controller operation, rendering deltas as they arrive."""
    chunks = []

    def on_delta(key, delta):
        chunks.append(delta)
        live.markdown("".join(chunks), unsafe_allow_html=True)

    controller.on_delta = on_delta
    log(f"{label}...")
    try:
        node = asyncio.run(operation(*args))
    except StudyTreeError as e:
        log(f"❌ {label} failed: {e}")
        st.error(f"{label} failed: {e}")
        return None
    finally:
        controller.on_delta = None
        live.empty()
    log(f"✅ {label} ({node.source})")
    return node


def record_study_time():
    opened_at = st.session_state.get("opened_at") or datetime.utcnow()
    minutes = int((datetime.utcnow() - opened_at).total_seconds() // 60)
    if minutes:
        controller.record_study_time(minutes)
        st.session_state.opened_at = datetime.utcnow()


def nav_buttons(html, action, label):
    items = navigable_items(html)
    if not items:
        return
    st.subheader(label)
    for i, item in enumerate(items):
        caption = f"{item.parent} › {item.title}" if item.parent else item.title
        if st.button(caption, key=f"{label}-{i}-{item.title}"):
            if run(f"Opening {item.title}", action, item.title):
                st.rerun()


# UI layout
st.title("🌳 Study Tree")
if controller.path:
    st.caption(" › ".join(controller.path))

top = st.columns(4)
if controller.view != View.INPUT and top[0].button("⬅️ Back"):
    record_study_time()
    controller.back()
    st.rerun()
if controller.current is not None and top[1].button("🔄 Regenerate"):
    if run("Regenerating", controller.regenerate):
        st.rerun()
if controller.errors and top[2].button("🔁 Retry"):
    if run("Retrying", controller.retry):
        st.rerun()
if controller.topic is not None and controller.topic.entity:
    top[3].metric("Progress", f"{controller.topic.entity.get('progress') or 0}%")

for warning in controller.warnings[-3:]:
    st.warning(warning)

if controller.view == View.INPUT:
    with st.form("topic_form"):
        topic_input = st.text_input("What do you want to study?", value="Photosynthesis")
        submitted = st.form_submit_button("🚀 Build outline")
    if submitted:
        if not topic_input.strip():
            st.error("Please enter a topic.")
        elif run(f"Outline for {topic_input.strip()}", controller.open_topic, topic_input.strip()):
            st.session_state.opened_at = datetime.utcnow()
            st.rerun()

elif controller.view == View.OUTLINE:
    st.markdown(controller.topic.html, unsafe_allow_html=True)
    nav_buttons(controller.topic.html, controller.open_section, "Sections")

elif controller.view == View.SUB_OUTLINE:
    st.markdown(controller.section.html, unsafe_allow_html=True)
    nav_buttons(controller.section.html, controller.open_subtopic, "Subtopics")

else:
    tabs = st.columns(3)
    if tabs[0].button("📚 Notes"):
        controller.show_notes()
    if tabs[1].button("📝 Quiz"):
        if controller.quiz is not None:
            controller.sub_view = SubView.QUIZ
        else:
            run("Generating quiz", controller.generate_quiz)

    if controller.sub_view == SubView.QUIZ and controller.quiz is not None:
        questions = parse_quiz(controller.quiz.html)
        with st.form("quiz_form"):
            selections = {}
            for qi, question in enumerate(questions):
                choice = st.radio(
                    question.prompt or f"Question {qi + 1}",
                    options=list(range(len(question.options))),
                    format_func=lambda oi, q=question: q.options[oi].text,
                    index=None,
                    key=f"quiz-{qi}",
                )
                selections[qi] = choice
            graded = st.form_submit_button("Submit answers")
        if graded:
            score = controller.submit_quiz(selections)
            log(f"Quiz scored {score}")
            st.success(f"You scored {score}. {feedback(score)}")
    elif controller.sub_view == SubView.DIVE_DEEPER and controller.dive_deeper:
        for answer in controller.dive_deeper:
            with st.expander(f"❓ {answer.title}", expanded=answer is controller.dive_deeper[-1]):
                st.markdown(answer.html, unsafe_allow_html=True)
    else:
        st.markdown(controller.note.html, unsafe_allow_html=True)

    with st.form("dive_deeper_form", clear_on_submit=True):
        question = st.text_input("Ask a follow-up question")
        asked = st.form_submit_button("🔎 Dive deeper")
    if asked and question.strip():
        if run(f"Answering {question.strip()}", controller.ask_follow_up, question.strip()):
            st.rerun()
