import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from suprss.models.article_state import ArticleState
from suprss.services.access import AccessGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateView:
    is_read: bool = False
    is_favorite: bool = False


UNSET = StateView()


class ArticleStateTracker:
    """Per-user read/favorite flags.

    Storage keeps a row only while at least one flag is true: an update that
    leaves both flags false deletes the row. Reads of a missing row return
    ``UNSET``. Every entry point authorizes the article first, so state of an
    unreachable article is never consulted.
    """

    def __init__(self, db: Session, gate: Optional[AccessGate] = None):
        self.db = db
        self.gate = gate or AccessGate(db)

    def set_read(self, user_id: int, article_id: int, read: bool) -> StateView:
        self.gate.authorize_article(user_id, article_id)
        return self._apply(user_id, article_id, is_read=read)

    def set_favorite(self, user_id: int, article_id: int, favorite: bool) -> StateView:
        self.gate.authorize_article(user_id, article_id)
        return self._apply(user_id, article_id, is_favorite=favorite)

    def get_state(self, user_id: int, article_id: int) -> StateView:
        self.gate.authorize_article(user_id, article_id)
        row = self._row(user_id, article_id)
        return self._view(row)

    def states_for(
        self, user_id: int, article_ids: Iterable[int]
    ) -> Dict[int, StateView]:
        """Bulk lookup for listings; ids must come from an authorized query."""
        ids = list(article_ids)
        if not ids:
            return {}

        rows = (
            self.db.query(ArticleState)
            .filter(
                ArticleState.user_id == user_id,
                ArticleState.article_id.in_(ids),
            )
            .all()
        )
        states = {row.article_id: self._view(row) for row in rows}
        return {article_id: states.get(article_id, UNSET) for article_id in ids}

    def _apply(self, user_id: int, article_id: int, **flags) -> StateView:
        row = self._row(user_id, article_id)
        if row is None:
            is_read = flags.get("is_read", False)
            is_favorite = flags.get("is_favorite", False)
            if not is_read and not is_favorite:
                self.db.commit()
                return UNSET
            try:
                with self.db.begin_nested():
                    self.db.add(
                        ArticleState(
                            user_id=user_id,
                            article_id=article_id,
                            is_read=is_read,
                            is_favorite=is_favorite,
                        )
                    )
            except IntegrityError:
                # Stored by a concurrent request; merge into that row
                logger.debug(f"State of article {article_id} for user {user_id} stored concurrently")
                row = self._row(user_id, article_id)
            else:
                return self._commit(user_id, article_id, is_read, is_favorite)

        current = self._view(row)
        is_read = flags.get("is_read", current.is_read)
        is_favorite = flags.get("is_favorite", current.is_favorite)

        if not is_read and not is_favorite:
            self.db.delete(row)
        else:
            row.is_read = is_read
            row.is_favorite = is_favorite
        return self._commit(user_id, article_id, is_read, is_favorite)

    def _commit(self, user_id: int, article_id: int, is_read: bool, is_favorite: bool) -> StateView:
        self.db.commit()
        logger.debug(
            f"User {user_id} article {article_id}: read={is_read} favorite={is_favorite}"
        )
        return StateView(is_read=is_read, is_favorite=is_favorite)

    def _row(self, user_id: int, article_id: int) -> Optional[ArticleState]:
        return (
            self.db.query(ArticleState)
            .filter(
                ArticleState.user_id == user_id,
                ArticleState.article_id == article_id,
            )
            .first()
        )

    @staticmethod
    def _view(row: Optional[ArticleState]) -> StateView:
        if row is None:
            return UNSET
        return StateView(is_read=bool(row.is_read), is_favorite=bool(row.is_favorite))
