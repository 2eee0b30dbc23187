#!/usr/bin/env python3
"""QuizJeux terminal client: menu system over the quiz service."""

import dataclasses
import logging
import random
import sys
import time
from typing import Dict, Optional

import config
import display
from badges import badge_board
from database import Database
from errors import QuizAppError
from models import AnswerValue, Question, Quiz, User
from question_generator import QuestionGenerator
from quiz_service import QuizService

logger = logging.getLogger(__name__)


def check_api_keys() -> bool:
    """True if at least one AI provider has a key configured."""
    if not any(config.PROVIDER_API_KEYS.values()):
        display.show_error(
            "No AI provider key is set.\n"
            "  1. Copy .env.example to .env\n"
            "  2. Add ANTHROPIC_API_KEY, OPENAI_API_KEY or GOOGLE_API_KEY\n"
            "  3. Run the app again\n"
        )
        return False
    return True


def select_or_create_profile(service: QuizService) -> Optional[User]:
    """List existing profiles or create a new one."""
    users = service.list_users()

    if not users:
        display.show_info("No profiles found. Let's create one!")
        return create_new_profile(service)

    options = [f"{u.username} ({u.email})" for u in users]
    options.append("Create new profile")

    choice = display.show_menu("Select Profile", options)

    if choice == len(options):
        return create_new_profile(service)
    return users[choice - 1]


def create_new_profile(service: QuizService) -> User:
    display.console.print()
    username = display.prompt_text("Username")
    email = display.prompt_text("Email")
    try:
        user = service.create_user(username, email)
    except QuizAppError as e:
        display.show_error(str(e))
        return create_new_profile(service)
    display.show_success(f"Profile created for {user.username}!")
    return user


# ---------------------------------------------------------------------------
# Playing
# ---------------------------------------------------------------------------

def _shuffled_for_ranking(question: Question) -> Question:
    items = list(question.options or question.correct_answer)
    return dataclasses.replace(question, options=random.sample(items, len(items)))


def play_quiz(service: QuizService, user: User, quiz: Quiz) -> None:
    display.show_quiz_intro(quiz)
    if not display.confirm("Ready to start?"):
        return

    answers: Dict[str, AnswerValue] = {}
    started = time.monotonic()
    total = len(quiz.questions)
    for i, question in enumerate(quiz.questions, 1):
        shown = _shuffled_for_ranking(question) if question.type == "ranking" else question
        display.show_question(i, total, shown)
        answer = display.get_answer_input(shown)
        if answer is not None:
            answers[question.id] = answer
        display.show_answer_feedback(question, answer)

        if quiz.time_limit and time.monotonic() - started > quiz.time_limit:
            display.show_warning("Time's up!")
            break

    outcome = service.submit(user.id, quiz.id, answers, round(time.monotonic() - started, 1))
    display.show_result(outcome.result, quiz.title)

    catalog = service.catalog
    unlocked = [catalog.get(badge_id) for badge_id in sorted(outcome.new_badges)]
    display.show_new_badges([r for r in unlocked if r is not None])
    if outcome.stats.level > 1 and any(b.startswith("level_") for b in outcome.new_badges):
        display.show_success(f"Level up! You are now level {outcome.stats.level}.")


def pick_quiz(service: QuizService, mine_for: Optional[User] = None) -> Optional[Quiz]:
    quizzes = service.list_quizzes(mine_for.id if mine_for else None)
    if not quizzes:
        display.show_info("No quizzes yet. Create one first!")
        return None
    display.show_quiz_list(quizzes, "My Quizzes" if mine_for else "Quiz Library")
    choice = display.prompt_int("Pick a quiz (0 to go back)", 0, len(quizzes))
    return quizzes[choice - 1] if choice else None


# ---------------------------------------------------------------------------
# Creating
# ---------------------------------------------------------------------------

def _choose(title: str, values) -> str:
    choice = display.show_menu(title, [str(v).replace("_", " ").title() for v in values])
    return values[choice - 1]


def create_quiz_manually(service: QuizService, user: User) -> None:
    title = display.prompt_text("Quiz title")
    description = display.prompt_text("Description (optional)")
    category = _choose("Category", list(config.QUIZ_CATEGORIES))
    difficulty = _choose("Difficulty", list(config.DIFFICULTY_LEVELS))

    questions = []
    while True:
        qtype = _choose("Question type", list(config.QUESTION_TYPES))
        text = display.prompt_text("Question")
        question = {"type": qtype, "question": text}
        if qtype == "multiple":
            options = [display.prompt_text(f"Option {letter}") for letter in "ABCD"]
            question["options"] = [o for o in options if o]
            question["correctAnswer"] = display.prompt_text("Correct option text")
        elif qtype == "truefalse":
            question["correctAnswer"] = "True" if display.confirm("Is the statement true?") else "False"
        elif qtype == "ranking":
            items = display.prompt_text("Items in the correct order, comma separated")
            question["correctAnswer"] = [i.strip() for i in items.split(",") if i.strip()]
            question["options"] = list(question["correctAnswer"])
        else:
            question["correctAnswer"] = display.prompt_text("Expected answer")
        question["explanation"] = display.prompt_text("Explanation (optional)") or None
        questions.append(question)
        if not display.confirm("Add another question?"):
            break

    quiz = service.create_quiz(user.id, {
        "title": title,
        "description": description or None,
        "category": category,
        "difficulty": difficulty,
        "questions": questions,
    })
    display.show_success(f"Created '{quiz.title}' with {len(quiz.questions)} questions.")


def create_quiz_with_ai(service: QuizService, user: User) -> None:
    if service.generator is None or not service.generator.available:
        check_api_keys()
        return
    topic = display.prompt_text("Topic")
    count = display.prompt_int("Number of questions", config.MIN_GENERATED_QUESTIONS,
                               config.MAX_GENERATED_QUESTIONS)
    difficulty = _choose("Difficulty", list(config.DIFFICULTY_LEVELS))
    types = [t for t in config.QUESTION_TYPES
             if display.confirm(f"Include {config.QUESTION_TYPE_DISPLAY[t]} questions?")]

    with display.console.status("Generating questions..."):
        quiz = service.generate_quiz(user.id, {
            "topic": topic,
            "numberOfQuestions": count,
            "difficulty": difficulty,
            "questionTypes": types,
        })
    display.show_success(f"Created '{quiz.title}' with {len(quiz.questions)} questions.")


def manage_my_quizzes(service: QuizService, user: User) -> None:
    quiz = pick_quiz(service, mine_for=user)
    if quiz is None:
        return
    choice = display.show_menu(quiz.title, ["Play", "Duplicate", "Rename", "Delete", "Back"])
    if choice == 1:
        play_quiz(service, user, quiz)
    elif choice == 2:
        copy = service.duplicate_quiz(quiz.id, user.id)
        display.show_success(f"Created '{copy.title}'.")
    elif choice == 3:
        title = display.prompt_text("New title", quiz.title)
        service.update_quiz(quiz.id, {"title": title})
        display.show_success("Quiz updated.")
    elif choice == 4:
        if display.confirm(f"Delete '{quiz.title}'?"):
            service.delete_quiz(quiz.id)
            display.show_success("Quiz deleted.")


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

def groups_menu(service: QuizService, user: User) -> None:
    while True:
        choice = display.show_menu("Groups", [
            "My groups",
            "Browse public groups",
            "Create a group",
            "Group ranking",
            "Back",
        ])
        if choice == 1:
            groups = service.list_groups(user.id)
            if not groups:
                display.show_info("You are not in any group yet.")
                continue
            display.show_groups(groups, "My Groups")
            pick = display.prompt_int("Open a group (0 to go back)", 0, len(groups))
            if pick:
                group_detail(service, user, groups[pick - 1].id)
        elif choice == 2:
            groups = service.list_groups()
            if not groups:
                display.show_info("No public groups yet.")
                continue
            display.show_groups(groups)
            pick = display.prompt_int("Join a group (0 to go back)", 0, len(groups))
            if pick and service.join_group(groups[pick - 1].id, user.id):
                display.show_success(f"Joined {groups[pick - 1].name}!")
        elif choice == 3:
            name = display.prompt_text("Group name")
            description = display.prompt_text("Description (optional)")
            join_type = _choose("Who can join?", list(config.GROUP_JOIN_TYPES))
            group = service.create_group(user.id, {
                "name": name, "description": description or None, "joinType": join_type,
            })
            display.show_success(f"Created group {group.name}.")
        elif choice == 4:
            display.show_groups(service.group_ranking(), "Group Ranking")
            display.press_enter_to_continue()
        else:
            break


def group_detail(service: QuizService, user: User, group_id: str) -> None:
    group = service.get_group(group_id)
    display.show_groups([group], group.name)
    display.show_group_members(service.group_members(group_id))
    badges = service.get_group_badges(group_id)
    display.show_info(f"Group badges earned: {len(badges)}")

    choice = display.show_menu(group.name, [
        "Play a group quiz", "Share one of my quizzes", "Member leaderboard", "Leave group", "Back",
    ])
    if choice == 1:
        quizzes = service.group_quizzes(group_id)
        if not quizzes:
            display.show_info("No quizzes shared yet.")
            return
        display.show_quiz_list(quizzes, f"{group.name} Quizzes")
        pick = display.prompt_int("Pick a quiz (0 to go back)", 0, len(quizzes))
        if pick:
            play_quiz(service, user, quizzes[pick - 1])
    elif choice == 2:
        quiz = pick_quiz(service, mine_for=user)
        if quiz and service.share_quiz(group_id, quiz.id, user.id):
            display.show_success(f"Shared '{quiz.title}' with {group.name}.")
    elif choice == 3:
        display.show_leaderboard(service.group_leaderboard(group_id), f"{group.name} Leaderboard")
        display.press_enter_to_continue()
    elif choice == 4:
        if display.confirm(f"Leave {group.name}?"):
            service.leave_group(group_id, user.id)
            display.show_success("You left the group.")


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def main_menu_loop(service: QuizService, user: User) -> None:
    while True:
        display.clear_screen()
        display.show_banner()
        stats = service.get_stats(user.id)
        display.show_info(f"Player: {user.username} | Level {stats.level} | {stats.xp:,} XP")
        display.console.print()

        options = [
            "Play a quiz",
            "Create a quiz",
            "Generate a quiz with AI",
            "My quizzes",
            "Stats & badges",
            "Leaderboard",
            "Groups",
            "Switch profile",
            "Exit",
        ]

        choice = display.show_menu("Main Menu", options)

        try:
            if choice == 1:
                quiz = pick_quiz(service)
                if quiz:
                    play_quiz(service, user, quiz)
                    display.press_enter_to_continue()

            elif choice == 2:
                create_quiz_manually(service, user)
                display.press_enter_to_continue()

            elif choice == 3:
                create_quiz_with_ai(service, user)
                display.press_enter_to_continue()

            elif choice == 4:
                manage_my_quizzes(service, user)
                display.press_enter_to_continue()

            elif choice == 5:
                display.show_stats(stats, user.username)
                board = badge_board(service.get_earned_badges(user.id), service.catalog)
                display.show_badges(board, show_locked=True)
                display.press_enter_to_continue()

            elif choice == 6:
                display.show_leaderboard(service.leaderboard())
                display.press_enter_to_continue()

            elif choice == 7:
                groups_menu(service, user)

            elif choice == 8:
                new_user = select_or_create_profile(service)
                if new_user:
                    user = new_user

            elif choice == 9:
                display.show_info("Goodbye! See you on the leaderboard!")
                break

        except KeyboardInterrupt:
            display.console.print("\n")
            display.show_info("Returning to main menu...")
            continue
        except QuizAppError as e:
            display.show_error(str(e))
            display.press_enter_to_continue()


def main() -> None:
    """Entry point."""
    config.setup_logging()
    display.clear_screen()
    display.show_banner()

    if not check_api_keys():
        display.show_warning("Running without AI generation. You can still create quizzes by hand.")
        display.press_enter_to_continue()

    try:
        db = Database(config.DATABASE_URL)
        db.initialize()
    except Exception as e:
        logger.exception("Could not open the database")
        display.show_error(f"Could not connect to the database ({e}). Check QUIZ_DATABASE_URL.")
        sys.exit(1)

    service = QuizService(db, QuestionGenerator.from_config())
    try:
        user = select_or_create_profile(service)
        if not user:
            display.show_error("No profile selected. Exiting.")
            sys.exit(1)

        main_menu_loop(service, user)

    except KeyboardInterrupt:
        display.console.print("\n")
        display.show_info("Goodbye!")
    finally:
        db.close()


if __name__ == "__main__":
    main()
