from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from trivia import db
from trivia.errors import UserNotFound
from trivia.models import User


def get_user_by_external_id(external_id: str) -> Optional[User]:
    return User.query.filter_by(external_id=external_id).first()


def get_or_create_user(external_id: str, username: str, avatar_url: Optional[str] = None) -> User:
    """Return the user for an identity-provider id, creating it on first sight."""
    user = get_user_by_external_id(external_id)
    if user:
        return user
    user = User(
        external_id=external_id,
        username=username,
        avatar_url=avatar_url,
        games_played=0,
        games_won=0,
        total_score=0,
    )
    user.category_stats = {}
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Another request registered the same external id first
        db.session.rollback()
        return get_user_by_external_id(external_id)
    current_app.logger.info(f"[user-create] user={user.id} external_id={external_id}")
    return user


def update_user_stats(user_id: int, won: bool, score: int, categories: Iterable[str] = ()) -> User:
    """Fold one finished game into the user's lifetime stats.

    Does not commit; the caller finishes the game in the same transaction.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFound()
    user.games_played = (user.games_played or 0) + 1
    user.games_won = (user.games_won or 0) + (1 if won else 0)
    user.total_score = (user.total_score or 0) + int(score)
    stats = user.category_stats
    for category in categories:
        stats[category] = stats.get(category, 0) + 1
    user.category_stats = stats
    db.session.add(user)
    return user


def get_leaderboard(limit: int = 10) -> List[User]:
    return (
        User.query
        .order_by(User.games_won.desc(), User.total_score.desc(), User.id)
        .limit(limit)
        .all()
    )
