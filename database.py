import dataclasses
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

import psycopg2
import psycopg2.extras
from psycopg2.extras import Json

import config
from errors import PersistenceError
from models import (
    Group,
    GroupMember,
    GroupStats,
    LeaderboardEntry,
    Question,
    Quiz,
    QuizResult,
    User,
    UserStats,
)
from scoring import accuracy_percent
from stats import apply_result, group_stats, result_accuracy

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    """CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS quizzes (
        id TEXT PRIMARY KEY,
        user_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        title TEXT NOT NULL,
        description TEXT,
        questions JSONB NOT NULL DEFAULT '[]',
        theme TEXT NOT NULL DEFAULT 'purple',
        difficulty TEXT NOT NULL DEFAULT 'intermediate',
        time_limit INTEGER,
        category TEXT,
        tags JSONB NOT NULL DEFAULT '[]',
        is_public BOOLEAN NOT NULL DEFAULT TRUE,
        shared_with_groups JSONB NOT NULL DEFAULT '[]',
        plays INTEGER NOT NULL DEFAULT 0,
        average_score INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS results (
        id TEXT PRIMARY KEY,
        quiz_id TEXT REFERENCES quizzes(id) ON DELETE SET NULL,
        user_id TEXT NOT NULL REFERENCES users(id),
        score INTEGER NOT NULL,
        total_points INTEGER NOT NULL,
        correct_answers INTEGER NOT NULL,
        total_questions INTEGER NOT NULL,
        time_spent REAL NOT NULL DEFAULT 0,
        streak INTEGER NOT NULL DEFAULT 0,
        answers JSONB NOT NULL DEFAULT '{}',
        completed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS user_stats (
        user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
        total_quizzes INTEGER NOT NULL DEFAULT 0,
        total_questions INTEGER NOT NULL DEFAULT 0,
        correct_answers INTEGER NOT NULL DEFAULT 0,
        total_points INTEGER NOT NULL DEFAULT 0,
        level INTEGER NOT NULL DEFAULT 1,
        xp INTEGER NOT NULL DEFAULT 0,
        current_streak INTEGER NOT NULL DEFAULT 0,
        best_streak INTEGER NOT NULL DEFAULT 0,
        perfect_scores INTEGER NOT NULL DEFAULT 0,
        perfect_streak INTEGER NOT NULL DEFAULT 0,
        daily_streak INTEGER NOT NULL DEFAULT 0,
        weekly_streak INTEGER NOT NULL DEFAULT 0,
        monthly_streak INTEGER NOT NULL DEFAULT 0,
        created_quizzes INTEGER NOT NULL DEFAULT 0,
        category_quizzes JSONB NOT NULL DEFAULT '{}',
        difficulty_quizzes JSONB NOT NULL DEFAULT '{}',
        theme_quizzes JSONB NOT NULL DEFAULT '{}',
        time_quizzes JSONB NOT NULL DEFAULT '{}',
        question_type_stats JSONB NOT NULL DEFAULT '{}',
        last_played_at TIMESTAMP,
        quiz_history JSONB NOT NULL DEFAULT '[]'
    )""",
    """CREATE TABLE IF NOT EXISTS groups (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        badge TEXT,
        creator_id TEXT NOT NULL REFERENCES users(id),
        visibility TEXT NOT NULL DEFAULT 'public',
        join_type TEXT NOT NULL DEFAULT 'open',
        member_count INTEGER NOT NULL DEFAULT 0,
        total_quizzes INTEGER NOT NULL DEFAULT 0,
        average_score INTEGER NOT NULL DEFAULT 0,
        total_points INTEGER NOT NULL DEFAULT 0,
        plays INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS group_members (
        group_id TEXT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        role TEXT NOT NULL DEFAULT 'member',
        joined_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        contributed_quizzes INTEGER NOT NULL DEFAULT 0,
        contributed_points INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (group_id, user_id)
    )""",
    """CREATE TABLE IF NOT EXISTS group_quizzes (
        group_id TEXT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
        quiz_id TEXT NOT NULL REFERENCES quizzes(id) ON DELETE CASCADE,
        shared_by TEXT REFERENCES users(id),
        shared_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (group_id, quiz_id)
    )""",
]

# user_stats columns written back after every submission
STAT_COUNTERS = (
    "total_quizzes", "total_questions", "correct_answers", "total_points", "level", "xp",
    "current_streak", "best_streak", "perfect_scores", "perfect_streak",
    "daily_streak", "weekly_streak", "monthly_streak", "created_quizzes",
)
STAT_MAPPINGS = (
    "category_quizzes", "difficulty_quizzes", "theme_quizzes", "time_quizzes",
    "question_type_stats",
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _ts(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class Database:
    def __init__(self, db_url: str = ""):
        self.db_url = db_url or config.DATABASE_URL
        self.conn = psycopg2.connect(self.db_url)
        self.conn.autocommit = False

    def initialize(self) -> None:
        with self.transaction() as cur:
            for stmt in SCHEMA_STATEMENTS:
                cur.execute(stmt)

    def close(self) -> None:
        self.conn.close()

    def _cursor(self):
        """Return a RealDictCursor for dict-like row access."""
        return self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    def _rollback(self) -> None:
        try:
            self.conn.rollback()
        except psycopg2.Error as e:
            logger.error("Rollback failed, connection is unusable: %s", e)

    @contextmanager
    def transaction(self) -> Iterator:
        """Unit of work: commit on success, roll back everything on failure."""
        cur = self._cursor()
        try:
            yield cur
            self.conn.commit()
        except psycopg2.Error as e:
            self._rollback()
            logger.error("Database operation failed, rolled back: %s", e)
            raise PersistenceError() from e
        except Exception:
            self._rollback()
            raise
        finally:
            cur.close()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def create_user(self, username: str, email: str) -> User:
        user_id = _new_id()
        with self.transaction() as cur:
            cur.execute(
                "INSERT INTO users (id, username, email) VALUES (%s, %s, %s) RETURNING *",
                (user_id, username, email),
            )
            row = cur.fetchone()
            cur.execute(
                "INSERT INTO user_stats (user_id) VALUES (%s) ON CONFLICT (user_id) DO NOTHING",
                (user_id,),
            )
        return self._row_to_user(row)

    def get_user(self, user_id: str) -> Optional[User]:
        with self.transaction() as cur:
            cur.execute("SELECT * FROM users WHERE id = %s", (user_id,))
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self.transaction() as cur:
            cur.execute("SELECT * FROM users WHERE LOWER(username) = LOWER(%s)", (username,))
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def list_users(self) -> List[User]:
        with self.transaction() as cur:
            cur.execute("SELECT * FROM users ORDER BY username")
            rows = cur.fetchall()
        return [self._row_to_user(r) for r in rows]

    def _row_to_user(self, row: dict) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            created_at=_ts(row.get("created_at")),
        )

    # ------------------------------------------------------------------
    # Quizzes
    # ------------------------------------------------------------------
    def list_quizzes(self) -> List[Quiz]:
        """Public quizzes, newest first."""
        with self.transaction() as cur:
            cur.execute("SELECT * FROM quizzes WHERE is_public ORDER BY created_at DESC")
            rows = cur.fetchall()
        return [self._row_to_quiz(r) for r in rows]

    def list_quizzes_for_user(self, user_id: str) -> List[Quiz]:
        with self.transaction() as cur:
            cur.execute(
                "SELECT * FROM quizzes WHERE user_id = %s ORDER BY created_at DESC", (user_id,)
            )
            rows = cur.fetchall()
        return [self._row_to_quiz(r) for r in rows]

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        with self.transaction() as cur:
            cur.execute("SELECT * FROM quizzes WHERE id = %s", (quiz_id,))
            row = cur.fetchone()
        return self._row_to_quiz(row) if row else None

    def _insert_quiz(self, cur, quiz: Quiz) -> dict:
        cur.execute(
            """INSERT INTO quizzes
               (id, user_id, title, description, questions, theme, difficulty,
                time_limit, category, tags, is_public, shared_with_groups)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
               RETURNING *""",
            (
                quiz.id or _new_id(), quiz.user_id, quiz.title, quiz.description,
                Json([dataclasses.asdict(q) for q in quiz.questions]),
                quiz.theme, quiz.difficulty, quiz.time_limit, quiz.category,
                Json(quiz.tags), quiz.is_public, Json(quiz.shared_with_groups),
            ),
        )
        return cur.fetchone()

    def create_quiz(self, quiz: Quiz) -> Quiz:
        """Insert a quiz and credit its author in the same transaction."""
        with self.transaction() as cur:
            row = self._insert_quiz(cur, quiz)
            if quiz.user_id:
                cur.execute(
                    """INSERT INTO user_stats (user_id, created_quizzes) VALUES (%s, 1)
                       ON CONFLICT (user_id) DO UPDATE
                       SET created_quizzes = user_stats.created_quizzes + 1""",
                    (quiz.user_id,),
                )
        return self._row_to_quiz(row)

    def update_quiz(self, quiz: Quiz) -> Optional[Quiz]:
        with self.transaction() as cur:
            cur.execute(
                """UPDATE quizzes SET
                   title=%s, description=%s, questions=%s, theme=%s, difficulty=%s,
                   time_limit=%s, category=%s, tags=%s, is_public=%s,
                   updated_at=CURRENT_TIMESTAMP
                   WHERE id=%s
                   RETURNING *""",
                (
                    quiz.title, quiz.description,
                    Json([dataclasses.asdict(q) for q in quiz.questions]),
                    quiz.theme, quiz.difficulty, quiz.time_limit, quiz.category,
                    Json(quiz.tags), quiz.is_public, quiz.id,
                ),
            )
            row = cur.fetchone()
        return self._row_to_quiz(row) if row else None

    def delete_quiz(self, quiz_id: str) -> bool:
        with self.transaction() as cur:
            cur.execute("DELETE FROM quizzes WHERE id = %s", (quiz_id,))
            deleted = cur.rowcount > 0
        return deleted

    def duplicate_quiz(self, quiz_id: str, user_id: Optional[str] = None) -> Optional[Quiz]:
        original = self.get_quiz(quiz_id)
        if original is None:
            return None
        copy = dataclasses.replace(
            original,
            id=_new_id(),
            title=f"{original.title} (Copy)",
            user_id=user_id or original.user_id,
            shared_with_groups=[],
            plays=0,
            average_score=0,
        )
        with self.transaction() as cur:
            row = self._insert_quiz(cur, copy)
        return self._row_to_quiz(row)

    def _row_to_quiz(self, row: dict) -> Quiz:
        return Quiz(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            questions=[Question(**q) for q in (row["questions"] or [])],
            theme=row["theme"],
            difficulty=row["difficulty"],
            time_limit=row["time_limit"],
            category=row["category"],
            tags=list(row["tags"] or []),
            is_public=row["is_public"],
            shared_with_groups=list(row["shared_with_groups"] or []),
            user_id=row["user_id"],
            created_at=_ts(row.get("created_at")),
            updated_at=_ts(row.get("updated_at")),
            plays=row["plays"] or 0,
            average_score=row["average_score"] or 0,
        )

    # ------------------------------------------------------------------
    # Results + stats
    # ------------------------------------------------------------------
    def get_results(self, user_id: str, limit: int = 0) -> List[QuizResult]:
        limit = limit or config.QUIZ_HISTORY_LIMIT
        with self.transaction() as cur:
            cur.execute(
                """SELECT * FROM results WHERE user_id = %s
                   ORDER BY completed_at DESC LIMIT %s""",
                (user_id, limit),
            )
            rows = cur.fetchall()
        return [self._row_to_result(r) for r in rows]

    def get_result(self, result_id: str) -> Optional[QuizResult]:
        with self.transaction() as cur:
            cur.execute("SELECT * FROM results WHERE id = %s", (result_id,))
            row = cur.fetchone()
        return self._row_to_result(row) if row else None

    def _row_to_result(self, row: dict) -> QuizResult:
        return QuizResult(
            id=row["id"],
            quiz_id=row["quiz_id"],
            user_id=row["user_id"],
            score=row["score"],
            total_points=row["total_points"],
            correct_answers=row["correct_answers"],
            total_questions=row["total_questions"],
            time_spent=row["time_spent"] or 0.0,
            streak=row["streak"] or 0,
            answers=dict(row["answers"] or {}),
            completed_at=_ts(row.get("completed_at")),
        )

    def get_stats(self, user_id: str) -> UserStats:
        """Stats for a user; all zeros if they never played."""
        with self.transaction() as cur:
            cur.execute("SELECT * FROM user_stats WHERE user_id = %s", (user_id,))
            row = cur.fetchone()
        return self._row_to_stats(row) if row else UserStats(user_id=user_id)

    def _write_stats(self, cur, stats: UserStats) -> None:
        columns = STAT_COUNTERS + STAT_MAPPINGS + ("last_played_at", "quiz_history")
        values = [getattr(stats, c) for c in STAT_COUNTERS]
        values += [Json(getattr(stats, c)) for c in STAT_MAPPINGS]
        values += [stats.last_played_at, Json(stats.quiz_history)]
        assignments = ", ".join(f"{c}=%s" for c in columns)
        cur.execute(
            f"UPDATE user_stats SET {assignments} WHERE user_id=%s",
            (*values, stats.user_id),
        )

    def _row_to_stats(self, row: dict) -> UserStats:
        stats = UserStats(user_id=row["user_id"])
        for column in STAT_COUNTERS:
            setattr(stats, column, row.get(column) or 0)
        for column in STAT_MAPPINGS:
            setattr(stats, column, dict(row.get(column) or {}))
        stats.level = row.get("level") or 1
        stats.last_played_at = _ts(row.get("last_played_at"))
        stats.quiz_history = list(row.get("quiz_history") or [])
        return stats

    def record_submission(
        self, user_id: str, quiz: Quiz, result: QuizResult
    ) -> Tuple[QuizResult, UserStats, UserStats]:
        """Persist one scored playthrough and everything it updates.

        The result insert, the stats read-modify-write (under a row lock), the
        quiz play counters and the group credits commit together or not at all.
        Returns (saved_result, stats_before, stats_after).
        """
        saved = dataclasses.replace(result, id=result.id or _new_id(), user_id=user_id)
        accuracy = result_accuracy(saved)

        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO results
                   (id, quiz_id, user_id, score, total_points, correct_answers,
                    total_questions, time_spent, streak, answers, completed_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)""",
                (
                    saved.id, quiz.id, user_id, saved.score, saved.total_points,
                    saved.correct_answers, saved.total_questions, saved.time_spent,
                    saved.streak, Json(saved.answers), saved.completed_at,
                ),
            )

            cur.execute(
                "INSERT INTO user_stats (user_id) VALUES (%s) ON CONFLICT (user_id) DO NOTHING",
                (user_id,),
            )
            cur.execute("SELECT * FROM user_stats WHERE user_id = %s FOR UPDATE", (user_id,))
            before = self._row_to_stats(cur.fetchone())
            after = apply_result(before, saved, quiz)
            self._write_stats(cur, after)

            # Postgres evaluates every SET expression against the old row
            cur.execute(
                """UPDATE quizzes SET
                   average_score = ROUND((average_score * plays + %s)::numeric / (plays + 1)),
                   plays = plays + 1
                   WHERE id = %s""",
                (accuracy, quiz.id),
            )
            cur.execute(
                """UPDATE group_members SET contributed_points = contributed_points + %s
                   WHERE user_id = %s""",
                (saved.score, user_id),
            )
            cur.execute(
                """UPDATE groups SET
                   average_score = ROUND((average_score * plays + %s)::numeric / (plays + 1)),
                   plays = plays + 1,
                   total_points = total_points + %s,
                   updated_at = CURRENT_TIMESTAMP
                   WHERE id IN (SELECT group_id FROM group_members WHERE user_id = %s)""",
                (accuracy, saved.score, user_id),
            )

        logger.info(
            "Recorded result %s for user %s: %d/%d correct, %d points",
            saved.id, user_id, saved.correct_answers, saved.total_questions, saved.score,
        )
        return saved, before, after

    def get_leaderboard(self, limit: int = 0) -> List[LeaderboardEntry]:
        """Players with points, best first."""
        limit = limit or config.LEADERBOARD_LIMIT
        with self.transaction() as cur:
            cur.execute(
                """SELECT u.username, s.total_points, s.total_quizzes,
                          s.correct_answers, s.total_questions
                   FROM user_stats s JOIN users u ON u.id = s.user_id
                   WHERE s.total_points > 0
                   ORDER BY s.total_points DESC, u.username
                   LIMIT %s""",
                (limit,),
            )
            rows = cur.fetchall()
        return [
            LeaderboardEntry(
                rank=i + 1,
                name=r["username"],
                score=r["total_points"],
                quizzes=r["total_quizzes"],
                accuracy=accuracy_percent(r["correct_answers"], r["total_questions"]),
            )
            for i, r in enumerate(rows)
        ]

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------
    def create_group(self, group: Group) -> Group:
        """Insert a group with its creator as the first member."""
        group_id = group.id or _new_id()
        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO groups
                   (id, name, description, badge, creator_id, visibility, join_type, member_count)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, 1)
                   RETURNING *""",
                (
                    group_id, group.name, group.description, group.badge,
                    group.creator_id, group.visibility, group.join_type,
                ),
            )
            row = cur.fetchone()
            cur.execute(
                "INSERT INTO group_members (group_id, user_id, role) VALUES (%s, %s, 'creator')",
                (group_id, group.creator_id),
            )
        return self._row_to_group(row)

    def get_group(self, group_id: str) -> Optional[Group]:
        with self.transaction() as cur:
            cur.execute("SELECT * FROM groups WHERE id = %s", (group_id,))
            row = cur.fetchone()
        return self._row_to_group(row) if row else None

    def list_groups(self) -> List[Group]:
        with self.transaction() as cur:
            cur.execute(
                "SELECT * FROM groups WHERE visibility = 'public' ORDER BY total_points DESC, name"
            )
            rows = cur.fetchall()
        return [self._row_to_group(r) for r in rows]

    def list_groups_for_user(self, user_id: str) -> List[Group]:
        with self.transaction() as cur:
            cur.execute(
                """SELECT g.* FROM groups g
                   JOIN group_members m ON m.group_id = g.id
                   WHERE m.user_id = %s
                   ORDER BY g.name""",
                (user_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_group(r) for r in rows]

    def get_member(self, group_id: str, user_id: str) -> Optional[GroupMember]:
        with self.transaction() as cur:
            cur.execute(
                """SELECT m.*, u.username FROM group_members m
                   JOIN users u ON u.id = m.user_id
                   WHERE m.group_id = %s AND m.user_id = %s""",
                (group_id, user_id),
            )
            row = cur.fetchone()
        return self._row_to_member(row) if row else None

    def join_group(self, group_id: str, user_id: str, role: str = "member") -> bool:
        """Add a member. Returns False if they already belonged to the group."""
        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO group_members (group_id, user_id, role) VALUES (%s, %s, %s)
                   ON CONFLICT (group_id, user_id) DO NOTHING""",
                (group_id, user_id, role),
            )
            joined = cur.rowcount > 0
            if joined:
                cur.execute(
                    """UPDATE groups SET member_count = member_count + 1,
                       updated_at = CURRENT_TIMESTAMP WHERE id = %s""",
                    (group_id,),
                )
        return joined

    def leave_group(self, group_id: str, user_id: str) -> bool:
        with self.transaction() as cur:
            cur.execute(
                "DELETE FROM group_members WHERE group_id = %s AND user_id = %s",
                (group_id, user_id),
            )
            left = cur.rowcount > 0
            if left:
                cur.execute(
                    """UPDATE groups SET member_count = GREATEST(member_count - 1, 0),
                       updated_at = CURRENT_TIMESTAMP WHERE id = %s""",
                    (group_id,),
                )
        return left

    def get_group_members(self, group_id: str) -> List[GroupMember]:
        with self.transaction() as cur:
            cur.execute(
                """SELECT m.*, u.username FROM group_members m
                   JOIN users u ON u.id = m.user_id
                   WHERE m.group_id = %s
                   ORDER BY m.joined_at""",
                (group_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_member(r) for r in rows]

    def share_quiz(self, group_id: str, quiz_id: str, user_id: str) -> bool:
        """Share a quiz with a group. Returns False if it was already shared."""
        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO group_quizzes (group_id, quiz_id, shared_by) VALUES (%s, %s, %s)
                   ON CONFLICT (group_id, quiz_id) DO NOTHING""",
                (group_id, quiz_id, user_id),
            )
            shared = cur.rowcount > 0
            if shared:
                cur.execute(
                    """UPDATE groups SET total_quizzes = total_quizzes + 1,
                       updated_at = CURRENT_TIMESTAMP WHERE id = %s""",
                    (group_id,),
                )
                cur.execute(
                    """UPDATE group_members SET contributed_quizzes = contributed_quizzes + 1
                       WHERE group_id = %s AND user_id = %s""",
                    (group_id, user_id),
                )
                cur.execute(
                    """UPDATE quizzes SET shared_with_groups = shared_with_groups || %s::jsonb
                       WHERE id = %s""",
                    (Json([group_id]), quiz_id),
                )
        return shared

    def get_group_quizzes(self, group_id: str) -> List[Quiz]:
        with self.transaction() as cur:
            cur.execute(
                """SELECT q.* FROM quizzes q
                   JOIN group_quizzes gq ON gq.quiz_id = q.id
                   WHERE gq.group_id = %s
                   ORDER BY gq.shared_at DESC""",
                (group_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_quiz(r) for r in rows]

    def get_group_stats(self, group_id: str) -> Optional[GroupStats]:
        """Group aggregate plus its rank among all groups by points."""
        with self.transaction() as cur:
            cur.execute("SELECT * FROM groups WHERE id = %s", (group_id,))
            row = cur.fetchone()
            if not row:
                return None
            cur.execute(
                "SELECT COUNT(*) + 1 AS rank FROM groups WHERE total_points > %s",
                (row["total_points"],),
            )
            rank = cur.fetchone()["rank"]
        return group_stats(self._row_to_group(row), rank=rank)

    def get_group_leaderboard(self, group_id: str) -> List[LeaderboardEntry]:
        """Members ranked by the points they earned while in the group."""
        with self.transaction() as cur:
            cur.execute(
                """SELECT u.username, m.contributed_points, m.contributed_quizzes,
                          COALESCE(s.correct_answers, 0) AS correct_answers,
                          COALESCE(s.total_questions, 0) AS total_questions
                   FROM group_members m
                   JOIN users u ON u.id = m.user_id
                   LEFT JOIN user_stats s ON s.user_id = m.user_id
                   WHERE m.group_id = %s
                   ORDER BY m.contributed_points DESC, u.username""",
                (group_id,),
            )
            rows = cur.fetchall()
        return [
            LeaderboardEntry(
                rank=i + 1,
                name=r["username"],
                score=r["contributed_points"],
                quizzes=r["contributed_quizzes"],
                accuracy=accuracy_percent(r["correct_answers"], r["total_questions"]),
            )
            for i, r in enumerate(rows)
        ]

    def get_group_ranking(self, limit: int = 0) -> List[Group]:
        limit = limit or config.LEADERBOARD_LIMIT
        with self.transaction() as cur:
            cur.execute(
                "SELECT * FROM groups ORDER BY total_points DESC, name LIMIT %s", (limit,)
            )
            rows = cur.fetchall()
        return [self._row_to_group(r) for r in rows]

    def _row_to_group(self, row: dict) -> Group:
        return Group(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            badge=row["badge"],
            creator_id=row["creator_id"],
            visibility=row["visibility"],
            join_type=row["join_type"],
            member_count=row["member_count"] or 0,
            total_quizzes=row["total_quizzes"] or 0,
            average_score=row["average_score"] or 0,
            total_points=row["total_points"] or 0,
            plays=row["plays"] or 0,
            created_at=_ts(row.get("created_at")),
            updated_at=_ts(row.get("updated_at")),
        )

    def _row_to_member(self, row: dict) -> GroupMember:
        return GroupMember(
            group_id=row["group_id"],
            user_id=row["user_id"],
            role=row["role"],
            joined_at=_ts(row.get("joined_at")),
            contributed_quizzes=row["contributed_quizzes"] or 0,
            contributed_points=row["contributed_points"] or 0,
            username=row.get("username", ""),
        )
