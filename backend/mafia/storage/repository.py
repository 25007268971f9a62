from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, selectinload, sessionmaker


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class FinishedGame(Base):
    """Archive row for one game that reached ENDED. Live rooms are never stored."""

    __tablename__ = "finished_games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    room_code: Mapped[str] = mapped_column(String(16), index=True)
    host_name: Mapped[str] = mapped_column(String(64))
    winner: Mapped[str] = mapped_column(String(16))
    rounds: Mapped[int] = mapped_column(Integer)
    audit_json: Mapped[str] = mapped_column(Text, default="[]")
    ended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    participants: Mapped[List["GameParticipant"]] = relationship(
        back_populates="game",
        cascade="all, delete-orphan",
        order_by="GameParticipant.seat",
    )


class GameParticipant(Base):
    __tablename__ = "game_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("finished_games.id"), index=True)
    seat: Mapped[int] = mapped_column(Integer)
    player_id: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(64))
    role: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    survived: Mapped[bool] = mapped_column(Boolean)

    game: Mapped[FinishedGame] = relationship(back_populates="participants")


class SQLiteRepository:
    def __init__(self, db_path: str = "./data/mafia.db") -> None:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(f"sqlite:///{db_path}", future=True)
        self.session_factory = sessionmaker(bind=self.engine, class_=Session, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    def save_finished_game(
        self,
        room_code: str,
        host_name: str,
        winner: str,
        rounds: int,
        final_roles: Iterable[Dict[str, Any]],
        audit_log: Optional[List[Dict[str, Any]]] = None,
    ) -> int:
        with self.session_factory() as session:
            game = FinishedGame(
                room_code=room_code,
                host_name=host_name,
                winner=winner,
                rounds=rounds,
                audit_json=json.dumps(audit_log or [], ensure_ascii=False),
            )
            game.participants = [
                GameParticipant(
                    seat=seat,
                    player_id=row["player_id"],
                    name=row["name"],
                    role=row.get("role"),
                    survived=bool(row.get("alive")),
                )
                for seat, row in enumerate(final_roles, start=1)
            ]
            session.add(game)
            session.commit()
            return game.id

    def get_game_record(self, record_id: int) -> Optional[dict]:
        with self.session_factory() as session:
            stmt = (
                select(FinishedGame)
                .where(FinishedGame.id == record_id)
                .options(selectinload(FinishedGame.participants))
            )
            game = session.scalars(stmt).first()
            if game is None:
                return None
            record = self._summary(game)
            record["participants"] = [
                {
                    "player_id": p.player_id,
                    "name": p.name,
                    "role": p.role,
                    "alive": p.survived,
                }
                for p in game.participants
            ]
            record["audit_log"] = json.loads(game.audit_json)
            return record

    def list_recent_games(self, limit: int = 20) -> List[dict]:
        with self.session_factory() as session:
            stmt = (
                select(FinishedGame)
                .options(selectinload(FinishedGame.participants))
                .order_by(FinishedGame.id.desc())
                .limit(limit)
            )
            return [self._summary(game) for game in session.scalars(stmt)]

    @staticmethod
    def _summary(game: FinishedGame) -> dict:
        return {
            "id": game.id,
            "room_code": game.room_code,
            "host_name": game.host_name,
            "winner": game.winner,
            "rounds": game.rounds,
            "player_count": len(game.participants),
            "ended_at": game.ended_at.isoformat(),
        }

    def dispose(self) -> None:
        self.engine.dispose()
