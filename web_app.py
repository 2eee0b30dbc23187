#!/usr/bin/env python3
"""QuizJeux: Streamlit web application."""

import logging
import random
import time
from typing import Dict, List, Optional

import streamlit as st

import config
from config import QUESTION_TYPE_DISPLAY
from badges import badge_board
from database import Database
from errors import QuizAppError, ValidationError
from models import AnswerValue, Question, Quiz
from question_generator import QuestionGenerator
from quiz_service import QuizService
from scoring import accuracy_percent, is_answer_correct

logger = logging.getLogger(__name__)


# =====================================================================
# Section 1: Page Config & Initialization
# =====================================================================

st.set_page_config(
    page_title="QuizJeux",
    page_icon="trophy",
    layout="wide",
    initial_sidebar_state="expanded",
)

if "service" not in st.session_state:
    config.setup_logging()
    db = Database(config.DATABASE_URL)
    db.initialize()
    st.session_state.service = QuizService(db, QuestionGenerator.from_config())

if "page" not in st.session_state:
    st.session_state.page = "home"

if "user" not in st.session_state:
    st.session_state.user = None


def get_service() -> QuizService:
    return st.session_state.service


def go(page: str) -> None:
    st.session_state.page = page
    st.rerun()


def reset_play_state():
    keys_to_remove = [k for k in st.session_state.keys() if k.startswith("play_") or k.startswith("q_")]
    for k in keys_to_remove:
        del st.session_state[k]


def show_validation_error(error: ValidationError) -> None:
    st.error(str(error.args[0]) if error.args else "Invalid input")
    for field_name, message in error.fields.items():
        st.caption(f"**{field_name}**: {message}")


def format_time(seconds: float) -> str:
    seconds = int(seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


# =====================================================================
# Section 2: Sidebar
# =====================================================================

NAV = [
    ("Quiz Library", "home"),
    ("Create a Quiz", "create"),
    ("Generate with AI", "generate"),
    ("My Quizzes", "mine"),
    ("Stats & Badges", "stats"),
    ("Leaderboard", "leaderboard"),
    ("Groups", "groups"),
]


def render_sidebar():
    with st.sidebar:
        st.title("QuizJeux")
        st.caption("Create, play and compete")

        if st.session_state.user:
            u = st.session_state.user
            stats = get_service().get_stats(u.id)
            st.info(f"**{u.username}** | Level {stats.level} | {stats.xp:,} XP")
            st.divider()

            for label, page in NAV:
                if st.button(label, use_container_width=True, key=f"nav_{page}"):
                    reset_play_state()
                    go(page)

            st.divider()
            if st.button("Switch Profile", use_container_width=True, key="nav_switch"):
                st.session_state.user = None
                go("profile")
        else:
            st.warning("No profile selected")


# =====================================================================
# Section 3: Profile
# =====================================================================

def page_profile():
    st.header("Select or Create Profile")
    service = get_service()
    users = service.list_users()

    if users:
        st.subheader("Existing Profiles")
        for u in users:
            col1, col2 = st.columns([3, 1])
            with col1:
                st.write(f"**{u.username}** ({u.email})")
            with col2:
                if st.button("Select", key=f"sel_{u.id}"):
                    st.session_state.user = u
                    go("home")

    st.divider()
    st.subheader("Create New Profile")
    with st.form("new_profile"):
        username = st.text_input("Username")
        email = st.text_input("Email")
        submitted = st.form_submit_button("Create Profile")

        if submitted:
            try:
                st.session_state.user = service.create_user(username, email)
            except ValidationError as e:
                show_validation_error(e)
            else:
                go("home")


# =====================================================================
# Section 4: Library + Playing
# =====================================================================

def render_quiz_card(quiz: Quiz, key_prefix: str) -> None:
    with st.container(border=True):
        col1, col2 = st.columns([4, 1])
        with col1:
            st.markdown(f"**{quiz.title}**")
            if quiz.description:
                st.caption(quiz.description)
            st.caption(
                f"{len(quiz.questions)} questions | {quiz.difficulty.title()}"
                f" | {quiz.category or 'Uncategorized'} | {quiz.plays} plays | avg {quiz.average_score}%"
            )
        with col2:
            if st.button("Play", key=f"{key_prefix}_play_{quiz.id}", type="primary"):
                start_quiz(quiz)


def page_home():
    st.header("Quiz Library")
    quizzes = get_service().list_quizzes()
    if not quizzes:
        st.info("No quizzes yet. Create one from the sidebar!")
        return

    categories = sorted({q.category for q in quizzes if q.category})
    selected = st.selectbox("Category", ["All"] + categories)
    search = st.text_input("Search", placeholder="Title or tag")
    for quiz in quizzes:
        if selected != "All" and quiz.category != selected:
            continue
        haystack = " ".join([quiz.title] + quiz.tags).lower()
        if search and search.lower() not in haystack:
            continue
        render_quiz_card(quiz, "lib")


def start_quiz(quiz: Quiz) -> None:
    reset_play_state()
    st.session_state.play_quiz = quiz
    st.session_state.play_index = 0
    st.session_state.play_answers = {}
    st.session_state.play_start = time.time()
    st.session_state.play_phase = "question"
    go("play")


def _ranking_items(question: Question) -> List[str]:
    key = f"q_items_{question.id}"
    if key not in st.session_state:
        items = list(question.options or question.correct_answer)
        st.session_state[key] = random.sample(items, len(items))
    return st.session_state[key]


def render_question(q_num: int, total: int, question: Question) -> Optional[AnswerValue]:
    """Render a question and return the current answer, or None."""
    col1, col2 = st.columns([3, 1])
    with col1:
        st.subheader(f"Question {q_num} of {total}")
        st.caption(f"{QUESTION_TYPE_DISPLAY.get(question.type, question.type)} | {question.points} pts")
    with col2:
        quiz = st.session_state.play_quiz
        elapsed = time.time() - st.session_state.play_start
        if quiz.time_limit:
            st.metric("Time Left", format_time(max(0, quiz.time_limit - elapsed)))
        else:
            st.metric("Time", format_time(elapsed))

    st.markdown(f"**{question.question}**")
    key = f"q_{q_num}_{question.id}"

    if question.type == "text":
        value = st.text_input("Your answer", key=key)
        return value.strip() or None
    if question.type == "ranking":
        items = _ranking_items(question)
        order = st.multiselect("Pick the items in order (first to last)", items, key=key)
        return order if len(order) == len(items) else None
    return st.radio("Select your answer:", question.options or [], index=None, key=key)


def page_play():
    quiz: Optional[Quiz] = st.session_state.get("play_quiz")
    if quiz is None:
        go("home")
        return

    phase = st.session_state.get("play_phase", "question")
    if phase == "question":
        _play_question(quiz)
    elif phase == "feedback":
        _play_feedback(quiz)
    else:
        _play_complete(quiz)


def _time_is_up(quiz: Quiz) -> bool:
    return bool(quiz.time_limit) and time.time() - st.session_state.play_start > quiz.time_limit


def _play_question(quiz: Quiz):
    idx = st.session_state.play_index
    if idx >= len(quiz.questions) or _time_is_up(quiz):
        if _time_is_up(quiz):
            st.warning("Time's up!")
        _finish(quiz)
        return

    question = quiz.questions[idx]
    answer = render_question(idx + 1, len(quiz.questions), question)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Submit Answer", type="primary", key=f"submit_{idx}"):
            if answer is not None:
                st.session_state.play_answers[question.id] = answer
            st.session_state.play_last = (question, answer)
            st.session_state.play_phase = "feedback"
            st.rerun()
    with col2:
        if st.button("Skip", key=f"skip_{idx}"):
            st.session_state.play_last = (question, None)
            st.session_state.play_phase = "feedback"
            st.rerun()


def _play_feedback(quiz: Quiz):
    question, answer = st.session_state.play_last
    correct = question.correct_answer
    correct_text = " > ".join(correct) if isinstance(correct, list) else correct

    st.markdown(f"**{question.question}**")
    if answer is None:
        st.info(f"Skipped. The correct answer is **{correct_text}**")
    elif is_answer_correct(correct, answer):
        st.success(f"Correct! +{question.points} points")
    else:
        st.error(f"Incorrect. The correct answer is **{correct_text}**")
    if question.explanation:
        st.caption(question.explanation)

    last = st.session_state.play_index + 1 >= len(quiz.questions)
    if st.button("See Results" if last else "Next Question", type="primary"):
        st.session_state.play_index += 1
        st.session_state.play_phase = "question"
        st.rerun()


def _finish(quiz: Quiz):
    elapsed = round(time.time() - st.session_state.play_start, 1)
    user = st.session_state.user
    st.session_state.play_outcome = get_service().submit(
        user.id, quiz.id, st.session_state.play_answers, elapsed
    )
    st.session_state.play_phase = "complete"
    st.rerun()


def _play_complete(quiz: Quiz):
    outcome = st.session_state.play_outcome
    result = outcome.result
    accuracy = accuracy_percent(result.correct_answers, result.total_questions)

    st.header(f"{quiz.title}: Complete!")
    if accuracy >= 85:
        st.success("Excellent work!")
    elif accuracy >= 60:
        st.info("Good effort! Keep practicing.")
    else:
        st.warning("Keep at it, you'll improve!")

    cols = st.columns(4)
    cols[0].metric("Correct", f"{result.correct_answers}/{result.total_questions} ({accuracy}%)")
    cols[1].metric("Points", f"{result.score}/{result.total_points}")
    cols[2].metric("Best Streak", result.streak)
    cols[3].metric("Time", format_time(result.time_spent))

    if outcome.new_badges:
        st.balloons()
        st.subheader("New badges unlocked!")
        catalog = get_service().catalog
        for badge_id in sorted(outcome.new_badges):
            rule = catalog.get(badge_id)
            if rule:
                st.success(f"**{rule.name}**: {rule.description}")

    if st.button("Back to Library", type="primary"):
        reset_play_state()
        go("home")


# =====================================================================
# Section 5: Creating quizzes
# =====================================================================

def _question_form(i: int) -> Dict:
    st.markdown(f"**Question {i + 1}**")
    qtype = st.selectbox(
        "Type", config.QUESTION_TYPES, key=f"new_type_{i}",
        format_func=lambda t: QUESTION_TYPE_DISPLAY.get(t, t),
    )
    question = {"type": qtype, "question": st.text_input("Question", key=f"new_text_{i}")}
    if qtype == "multiple":
        raw = st.text_area("Options (one per line)", key=f"new_opts_{i}")
        question["options"] = [o.strip() for o in raw.splitlines() if o.strip()]
        question["correctAnswer"] = st.text_input("Correct option (exact text)", key=f"new_ans_{i}")
    elif qtype == "truefalse":
        question["correctAnswer"] = st.radio("Answer", config.TRUE_FALSE_OPTIONS, key=f"new_ans_{i}",
                                             horizontal=True)
    elif qtype == "ranking":
        raw = st.text_area("Items in the correct order (one per line)", key=f"new_opts_{i}")
        items = [o.strip() for o in raw.splitlines() if o.strip()]
        question["options"] = items
        question["correctAnswer"] = items
    else:
        question["correctAnswer"] = st.text_input("Expected answer", key=f"new_ans_{i}")
    question["explanation"] = st.text_input("Explanation (optional)", key=f"new_expl_{i}") or None
    question["points"] = int(st.number_input("Points", min_value=0, value=config.DEFAULT_QUESTION_POINTS,
                                             key=f"new_pts_{i}"))
    return question


def page_create():
    st.header("Create a Quiz")
    count = int(st.number_input("Number of questions", min_value=1, max_value=50, value=3))

    with st.form("new_quiz"):
        title = st.text_input("Title")
        description = st.text_area("Description")
        col1, col2, col3 = st.columns(3)
        category = col1.selectbox("Category", config.QUIZ_CATEGORIES)
        difficulty = col2.selectbox("Difficulty", config.DIFFICULTY_LEVELS, index=1)
        theme = col3.selectbox("Theme", config.QUIZ_THEMES)
        tags = st.text_input("Tags (comma separated)")
        is_public = st.checkbox("Public", value=True)

        st.divider()
        questions = [_question_form(i) for i in range(count)]
        submitted = st.form_submit_button("Create Quiz", type="primary")

    if submitted:
        payload = {
            "title": title,
            "description": description or None,
            "category": category,
            "difficulty": difficulty,
            "theme": theme,
            "tags": [t.strip() for t in tags.split(",") if t.strip()],
            "isPublic": is_public,
            "questions": questions,
        }
        try:
            quiz = get_service().create_quiz(st.session_state.user.id, payload)
        except ValidationError as e:
            show_validation_error(e)
        else:
            st.success(f"Created **{quiz.title}** with {len(quiz.questions)} questions.")


def page_generate():
    st.header("Generate a Quiz with AI")
    service = get_service()
    if service.generator is None or not service.generator.available:
        st.warning("No AI provider is configured. Add ANTHROPIC_API_KEY, OPENAI_API_KEY or "
                   "GOOGLE_API_KEY to your .env or Streamlit secrets.")
        return

    with st.form("generate"):
        topic = st.text_input("Topic", placeholder="e.g. The Solar System")
        col1, col2 = st.columns(2)
        count = col1.slider("Number of questions", config.MIN_GENERATED_QUESTIONS,
                            config.MAX_GENERATED_QUESTIONS, config.DEFAULT_GENERATED_QUESTIONS)
        difficulty = col2.selectbox("Difficulty", config.DIFFICULTY_LEVELS, index=1)
        types = st.multiselect(
            "Question types", config.QUESTION_TYPES, default=list(config.DEFAULT_QUESTION_TYPES),
            format_func=lambda t: QUESTION_TYPE_DISPLAY.get(t, t),
        )
        category = st.selectbox("Category", config.QUIZ_CATEGORIES)
        submitted = st.form_submit_button("Generate", type="primary")

    if submitted:
        payload = {
            "topic": topic,
            "numberOfQuestions": count,
            "difficulty": difficulty,
            "questionTypes": types,
            "category": category,
        }
        try:
            with st.spinner("Generating questions..."):
                quiz = service.generate_quiz(st.session_state.user.id, payload)
        except ValidationError as e:
            show_validation_error(e)
        else:
            st.success(f"Created **{quiz.title}** with {len(quiz.questions)} questions.")
            render_quiz_card(quiz, "gen")


def page_mine():
    st.header("My Quizzes")
    service = get_service()
    user = st.session_state.user
    quizzes = service.list_quizzes(user.id)
    if not quizzes:
        st.info("You haven't created any quizzes yet.")
        return

    my_groups = service.list_groups(user.id)
    for quiz in quizzes:
        render_quiz_card(quiz, "mine")
        with st.expander(f"Manage '{quiz.title}'"):
            new_title = st.text_input("Title", value=quiz.title, key=f"title_{quiz.id}")
            public = st.checkbox("Public", value=quiz.is_public, key=f"public_{quiz.id}")
            col1, col2, col3 = st.columns(3)
            if col1.button("Save", key=f"save_{quiz.id}"):
                service.update_quiz(quiz.id, {"title": new_title, "isPublic": public})
                st.rerun()
            if col2.button("Duplicate", key=f"dup_{quiz.id}"):
                service.duplicate_quiz(quiz.id, user.id)
                st.rerun()
            if col3.button("Delete", key=f"del_{quiz.id}"):
                service.delete_quiz(quiz.id)
                st.rerun()

            if my_groups:
                names = {g.name: g.id for g in my_groups}
                target = st.selectbox("Share with group", list(names), key=f"share_to_{quiz.id}")
                if st.button("Share", key=f"share_{quiz.id}"):
                    if service.share_quiz(names[target], quiz.id, user.id):
                        st.success(f"Shared with {target}.")
                    else:
                        st.info("Already shared with that group.")


# =====================================================================
# Section 6: Stats, badges, leaderboard
# =====================================================================

def page_stats():
    import pandas as pd

    service = get_service()
    user = st.session_state.user
    stats = service.get_stats(user.id)

    st.header(f"Stats for {user.username}")
    cols = st.columns(4)
    cols[0].metric("Level", stats.level)
    cols[1].metric("XP", f"{stats.xp:,}")
    cols[2].metric("Quizzes", stats.total_quizzes)
    cols[3].metric("Accuracy", f"{accuracy_percent(stats.correct_answers, stats.total_questions)}%")
    cols = st.columns(4)
    cols[0].metric("Best Streak", stats.best_streak)
    cols[1].metric("Perfect Scores", stats.perfect_scores)
    cols[2].metric("Daily Streak", stats.daily_streak)
    cols[3].metric("Quizzes Created", stats.created_quizzes)

    results = service.get_results(user.id)
    if results:
        st.subheader("Recent Results")
        df = pd.DataFrame([
            {"Date": (r.completed_at or "?")[:10],
             "Accuracy": accuracy_percent(r.correct_answers, r.total_questions)}
            for r in reversed(results)
        ])
        st.line_chart(df.set_index("Date"))

    st.subheader("Badges")
    board = badge_board(service.get_earned_badges(user.id), service.catalog)
    earned_total = sum(1 for _, ok in board if ok)
    st.progress(earned_total / len(board) if board else 0.0,
                text=f"{earned_total} of {len(board)} badges earned")

    categories: Dict[str, list] = {}
    for rule, earned in board:
        categories.setdefault(rule.category, []).append((rule, earned))
    for category, entries in categories.items():
        got = [r for r, ok in entries if ok]
        with st.expander(f"{category.title()} ({len(got)}/{len(entries)})"):
            rows = [{"Badge": r.name, "Description": r.description, "Earned": "Yes" if ok else ""}
                    for r, ok in entries]
            st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)


def page_leaderboard():
    import pandas as pd

    st.header("Leaderboard")
    entries = get_service().leaderboard()
    if not entries:
        st.info("No scores yet. Play a quiz to get on the board!")
        return
    df = pd.DataFrame([
        {"Rank": e.rank, "Player": e.name, "Points": e.score, "Quizzes": e.quizzes,
         "Accuracy": f"{e.accuracy}%"}
        for e in entries
    ])
    st.dataframe(df, hide_index=True, use_container_width=True)


# =====================================================================
# Section 7: Groups
# =====================================================================

def page_groups():
    service = get_service()
    user = st.session_state.user
    st.header("Groups")

    tab_mine, tab_browse, tab_create, tab_rank = st.tabs(["My Groups", "Browse", "Create", "Ranking"])

    with tab_mine:
        groups = service.list_groups(user.id)
        if not groups:
            st.info("You are not in any group yet.")
        for g in groups:
            if st.button(f"{g.name} ({g.member_count} members)", key=f"open_{g.id}"):
                st.session_state.group_id = g.id
                go("group")

    with tab_browse:
        mine = {g.id for g in service.list_groups(user.id)}
        for g in service.list_groups():
            col1, col2 = st.columns([4, 1])
            col1.write(f"**{g.name}** | {g.member_count} members | {g.total_points:,} pts")
            if g.id in mine:
                col2.caption("Member")
            elif g.join_type == "invite_only":
                col2.caption("Invite only")
            elif col2.button("Join", key=f"join_{g.id}"):
                service.join_group(g.id, user.id)
                st.rerun()

    with tab_create:
        with st.form("new_group"):
            name = st.text_input("Name")
            description = st.text_area("Description")
            visibility = st.selectbox("Visibility", config.GROUP_VISIBILITIES)
            join_type = st.selectbox("Who can join", config.GROUP_JOIN_TYPES,
                                     format_func=lambda j: j.replace("_", " ").title())
            submitted = st.form_submit_button("Create Group", type="primary")
        if submitted:
            try:
                group = service.create_group(user.id, {
                    "name": name, "description": description or None,
                    "visibility": visibility, "joinType": join_type,
                })
            except ValidationError as e:
                show_validation_error(e)
            else:
                st.success(f"Created **{group.name}**.")

    with tab_rank:
        for i, g in enumerate(service.group_ranking(), 1):
            st.write(f"{i}. **{g.name}**, {g.total_points:,} pts, avg {g.average_score}%")


def page_group():
    import pandas as pd

    service = get_service()
    user = st.session_state.user
    group_id = st.session_state.get("group_id")
    if not group_id:
        go("groups")
        return

    group = service.get_group(group_id)
    st.header(group.name)
    if group.description:
        st.caption(group.description)
    cols = st.columns(4)
    cols[0].metric("Members", group.member_count)
    cols[1].metric("Shared Quizzes", group.total_quizzes)
    cols[2].metric("Points", f"{group.total_points:,}")
    cols[3].metric("Average", f"{group.average_score}%")

    earned = service.get_group_badges(group_id)
    rules = [r for r in service.group_catalog if r.id in earned]
    if rules:
        st.write("Badges: " + ", ".join(f"**{r.name}**" for r in rules))

    st.subheader("Leaderboard")
    entries = service.group_leaderboard(group_id)
    st.dataframe(pd.DataFrame([
        {"Rank": e.rank, "Member": e.name, "Points": e.score, "Shared": e.quizzes,
         "Accuracy": f"{e.accuracy}%"}
        for e in entries
    ]), hide_index=True, use_container_width=True)

    members = service.group_members(group_id)
    me = next((m for m in members if m.user_id == user.id), None)
    if me and me.role in ("creator", "admin"):
        others = [u for u in service.list_users() if u.id not in {m.user_id for m in members}]
        if others:
            pick = st.selectbox("Add a member", [u.username for u in others])
            if st.button("Add"):
                chosen = next(u for u in others if u.username == pick)
                service.add_member(group_id, user.id, chosen.id)
                st.rerun()

    st.subheader("Quizzes")
    quizzes = service.group_quizzes(group_id)
    if not quizzes:
        st.info("No quizzes shared yet.")
    for quiz in quizzes:
        render_quiz_card(quiz, "group")

    if me and me.role != "creator":
        st.divider()
        if st.button("Leave Group"):
            service.leave_group(group_id, user.id)
            go("groups")


# =====================================================================
# Section 8: Main Router
# =====================================================================

def main():
    render_sidebar()

    if st.session_state.user is None:
        page_profile()
        return

    routes = {
        "home": page_home,
        "profile": page_profile,
        "play": page_play,
        "create": page_create,
        "generate": page_generate,
        "mine": page_mine,
        "stats": page_stats,
        "leaderboard": page_leaderboard,
        "groups": page_groups,
        "group": page_group,
    }

    handler = routes.get(st.session_state.page, page_home)
    try:
        handler()
    except ValidationError as e:
        show_validation_error(e)
    except QuizAppError as e:
        logger.warning("Request failed: %s", e)
        st.error(str(e))


if __name__ == "__main__":
    main()
