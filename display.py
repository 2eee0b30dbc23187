import os
from typing import Dict, List, Optional, Sequence, Tuple

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from badges import BadgeRule
from config import QUESTION_TYPE_DISPLAY
from models import AnswerValue, Group, GroupMember, LeaderboardEntry, Question, Quiz, QuizResult, UserStats
from scoring import accuracy_percent, is_answer_correct

custom_theme = Theme({
    "correct": "bold green",
    "wrong": "bold red",
    "skip": "dim",
    "strong": "bold green",
    "needs_work": "bold yellow",
    "info": "bold cyan",
    "header": "bold magenta",
    "badge": "bold yellow",
})

console = Console(theme=custom_theme)

LETTERS = "ABCDEFGH"


# ---------------------------------------------------------------------------
# General UI
# ---------------------------------------------------------------------------

def clear_screen() -> None:
    os.system("cls" if os.name == "nt" else "clear")


def show_banner() -> None:
    banner = Text()
    banner.append("  QuizJeux  ", style="bold white on magenta")
    console.print()
    console.print(Align.center(banner))
    console.print(Align.center(Text("Create, play and compete", style="dim")))
    console.print()


def show_menu(title: str, options: List[str]) -> int:
    """Show a numbered menu and return 1-indexed selection."""
    console.print(Rule(title, style="header"))
    console.print()
    for i, option in enumerate(options, 1):
        console.print(f"  [bold cyan]{i}.[/bold cyan] {option}")
    console.print()

    while True:
        try:
            raw = console.input("[bold]Choose an option: [/bold]").strip()
            choice = int(raw)
            if 1 <= choice <= len(options):
                return choice
            console.print(f"  Please enter a number between 1 and {len(options)}.", style="wrong")
        except (ValueError, EOFError):
            console.print(f"  Please enter a number between 1 and {len(options)}.", style="wrong")


def show_error(message: str) -> None:
    console.print(f"  [wrong]Error:[/wrong] {message}")


def show_success(message: str) -> None:
    console.print(f"  [correct]{message}[/correct]")


def show_info(message: str) -> None:
    console.print(f"  [info]{message}[/info]")


def show_warning(message: str) -> None:
    console.print(f"  [needs_work]Warning:[/needs_work] {message}")


def confirm(prompt: str) -> bool:
    while True:
        raw = console.input(f"  {prompt} [bold](y/n)[/bold]: ").strip().lower()
        if raw in ("y", "yes"):
            return True
        if raw in ("n", "no"):
            return False
        console.print("  Please enter y or n.", style="dim")


def prompt_text(prompt: str, default: str = "") -> str:
    suffix = f" [{default}]" if default else ""
    raw = console.input(f"  {prompt}{suffix}: ").strip()
    return raw if raw else default


def prompt_int(prompt: str, min_val: int = 0, max_val: int = 100) -> int:
    while True:
        try:
            raw = console.input(f"  {prompt} ({min_val}-{max_val}): ").strip()
            val = int(raw)
            if min_val <= val <= max_val:
                return val
            console.print(f"  Please enter a number between {min_val} and {max_val}.", style="wrong")
        except (ValueError, EOFError):
            console.print("  Please enter a valid number.", style="wrong")


def press_enter_to_continue() -> None:
    try:
        console.input("  [dim]Press Enter to continue...[/dim]")
    except EOFError:
        pass


def format_time(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 60}m {total % 60:02d}s"


# ---------------------------------------------------------------------------
# Quizzes and questions
# ---------------------------------------------------------------------------

def show_quiz_list(quizzes: Sequence[Quiz], title: str = "Quizzes") -> None:
    table = Table(title=title, border_style="blue")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Category")
    table.add_column("Difficulty")
    table.add_column("Questions", justify="right")
    table.add_column("Plays", justify="right")
    table.add_column("Avg", justify="right")

    for i, quiz in enumerate(quizzes, 1):
        table.add_row(
            str(i), quiz.title, quiz.category or "-", quiz.difficulty.title(),
            str(len(quiz.questions)), str(quiz.plays), f"{quiz.average_score}%",
        )
    console.print(table)


def show_quiz_intro(quiz: Quiz) -> None:
    lines = [f"[bold]{quiz.title}[/bold]"]
    if quiz.description:
        lines.append(f"[dim]{quiz.description}[/dim]")
    lines.append("")
    lines.append(f"Questions: {len(quiz.questions)}")
    lines.append(f"Difficulty: {quiz.difficulty.title()}")
    if quiz.time_limit:
        lines.append(f"Time limit: {format_time(quiz.time_limit)}")
    console.print()
    console.print(Panel("\n".join(lines), border_style="magenta", padding=(1, 2)))
    console.print()


def show_question(question_number: int, total: int, question: Question) -> None:
    """Render a question with its options."""
    kind = QUESTION_TYPE_DISPLAY.get(question.type, question.type)
    header = f"Question {question_number}/{total}  |  {kind}  |  {question.points} pts"
    console.print()
    console.print(Rule(header, style="dim"))
    console.print(f"\n  [bold]{question.question}[/bold]\n")

    if question.type == "text":
        return
    for letter, option in zip(LETTERS, question.options or []):
        console.print(f"    [bold cyan]{letter})[/bold cyan] {option}")
    console.print()


def get_answer_input(question: Question) -> Optional[AnswerValue]:
    """Prompt for an answer in the shape the question type expects.

    Returns None when the player skips.
    """
    options = question.options or []
    while True:
        try:
            if question.type == "text":
                raw = console.input("  [bold]Your answer (Enter to skip): [/bold]").strip()
                return raw or None
            if question.type == "ranking":
                raw = console.input(
                    "  [bold]Order the items, e.g. B,A,C (Enter to skip): [/bold]"
                ).strip().upper()
            else:
                valid = LETTERS[:len(options)]
                raw = console.input(
                    f"  [bold]Your answer ({valid[0]}-{valid[-1]}, or S to skip): [/bold]"
                ).strip().upper()
        except EOFError:
            return None

        if raw in ("", "S"):
            return None
        if question.type == "ranking":
            picks = [p.strip() for p in raw.split(",") if p.strip()]
            if all(p in LETTERS[:len(options)] for p in picks) and len(set(picks)) == len(options):
                return [options[LETTERS.index(p)] for p in picks]
            console.print(f"  Please list every letter once, e.g. {','.join(LETTERS[:len(options)])}.",
                          style="dim")
            continue
        if len(raw) == 1 and raw in LETTERS[:len(options)]:
            return options[LETTERS.index(raw)]
        console.print("  Please enter one of the listed letters, or S to skip.", style="dim")


def show_answer_feedback(question: Question, answer: Optional[AnswerValue]) -> None:
    correct = question.correct_answer
    correct_text = " > ".join(correct) if isinstance(correct, list) else correct
    if answer is None:
        console.print(f"  [skip]Skipped.[/skip] Correct answer: {correct_text}")
    elif is_answer_correct(correct, answer):
        console.print(f"  [correct]Correct! +{question.points}[/correct]")
    else:
        console.print(f"  [wrong]Incorrect.[/wrong] Correct answer: [correct]{correct_text}[/correct]")

    if question.explanation:
        console.print(f"  [dim]{question.explanation}[/dim]")
    console.print()


def show_result(result: QuizResult, quiz_title: str) -> None:
    """Summary shown at the end of a quiz."""
    accuracy = accuracy_percent(result.correct_answers, result.total_questions)
    if accuracy >= 85:
        style, msg = "correct", "Excellent work!"
    elif accuracy >= 60:
        style, msg = "needs_work", "Good effort! Keep practicing."
    else:
        style, msg = "wrong", "Keep at it, you'll improve!"

    console.print()
    console.print(Panel(
        f"[bold]Quiz Complete: {quiz_title}[/bold]\n\n"
        f"Correct: [{style}]{result.correct_answers}/{result.total_questions} ({accuracy}%)[/{style}]\n"
        f"Points: {result.score}/{result.total_points}\n"
        f"Best streak: {result.streak}\n"
        f"Time: {format_time(result.time_spent)}\n\n"
        f"[{style}]{msg}[/{style}]",
        border_style="blue",
        padding=(1, 2),
    ))
    console.print()


# ---------------------------------------------------------------------------
# Progress and badges
# ---------------------------------------------------------------------------

def show_stats(stats: UserStats, username: str = "") -> None:
    table = Table(title=f"{username} Stats" if username else "Stats", border_style="blue")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Level", str(stats.level))
    table.add_row("XP", f"{stats.xp:,}")
    table.add_row("Quizzes played", str(stats.total_quizzes))
    table.add_row("Questions answered", str(stats.total_questions))
    table.add_row("Accuracy", f"{accuracy_percent(stats.correct_answers, stats.total_questions)}%")
    table.add_row("Total points", f"{stats.total_points:,}")
    table.add_row("Best streak", str(stats.best_streak))
    table.add_row("Perfect scores", str(stats.perfect_scores))
    table.add_row("Daily streak", str(stats.daily_streak))
    table.add_row("Quizzes created", str(stats.created_quizzes))
    console.print(table)


def show_new_badges(rules: Sequence[BadgeRule]) -> None:
    if not rules:
        return
    lines = [f"[badge]{r.name}[/badge]  [dim]{r.description}[/dim]" for r in rules]
    console.print(Panel(
        "\n".join(lines),
        title=f"New badge{'s' if len(rules) > 1 else ''} unlocked!",
        border_style="yellow",
        padding=(1, 2),
    ))
    console.print()


def show_badges(board: Sequence[Tuple[BadgeRule, bool]], show_locked: bool = False) -> None:
    """Earned badges grouped by category, with progress per category."""
    by_category: Dict[str, List[Tuple[BadgeRule, bool]]] = {}
    for rule, earned in board:
        by_category.setdefault(rule.category, []).append((rule, earned))

    table = Table(title="Badges", border_style="yellow")
    table.add_column("Category", style="bold")
    table.add_column("Earned", justify="right")
    table.add_column("Latest")
    for category, entries in by_category.items():
        earned = [r for r, ok in entries if ok]
        latest = earned[-1].name if earned else "-"
        table.add_row(category.title(), f"{len(earned)}/{len(entries)}", latest)
    console.print(table)

    if show_locked:
        locked = [r for r, ok in board if not ok][:10]
        for rule in locked:
            console.print(f"  [skip]Locked: {rule.name} - {rule.description}[/skip]")


def show_leaderboard(entries: Sequence[LeaderboardEntry], title: str = "Leaderboard") -> None:
    if not entries:
        show_info("No scores yet. Play a quiz to get on the board!")
        return
    table = Table(title=title, border_style="magenta")
    table.add_column("Rank", justify="right")
    table.add_column("Player", style="bold")
    table.add_column("Points", justify="right")
    table.add_column("Quizzes", justify="right")
    table.add_column("Accuracy", justify="right")
    for e in entries:
        rank_style = "badge" if e.rank <= 3 else ""
        table.add_row(
            f"[{rank_style}]{e.rank}[/{rank_style}]" if rank_style else str(e.rank),
            e.name, f"{e.score:,}", str(e.quizzes), f"{e.accuracy}%",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

def show_groups(groups: Sequence[Group], title: str = "Groups") -> None:
    table = Table(title=title, border_style="cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Members", justify="right")
    table.add_column("Quizzes", justify="right")
    table.add_column("Points", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("Join")
    for i, g in enumerate(groups, 1):
        table.add_row(
            str(i), g.name, str(g.member_count), str(g.total_quizzes),
            f"{g.total_points:,}", f"{g.average_score}%", g.join_type.replace("_", " "),
        )
    console.print(table)


def show_group_members(members: Sequence[GroupMember]) -> None:
    table = Table(border_style="dim")
    table.add_column("Member", style="bold")
    table.add_column("Role")
    table.add_column("Shared", justify="right")
    table.add_column("Points", justify="right")
    for m in members:
        table.add_row(m.username or m.user_id, m.role, str(m.contributed_quizzes),
                      f"{m.contributed_points:,}")
    console.print(table)
