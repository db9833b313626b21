"""Builds the game listing query from a loosely typed filter."""
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy import String, func, select
from sqlalchemy.sql import Select

from database import Game, Genre, Platform, game_genres, game_platforms

from .errors import InvalidFilterError

SORT_NEWEST = 'newest'
SORT_POPULAR = 'popular'

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 12

GAME_COLUMNS = (
    Game.id,
    Game.title,
    Game.developer,
    Game.publisher,
    Game.release_date,
    Game.cover_image,
)


def _coerce_positive_int(name: str, value: Any, default: int) -> int:
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise InvalidFilterError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise InvalidFilterError(f"{name} must be an integer, got {value!r}")
    if number < 1:
        raise InvalidFilterError(f"{name} must be >= 1, got {number}")
    return number


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass
class GameFilter:
    """Criteria for :meth:`GameRepository.list_games`.

    ``title`` is a case-insensitive substring, ``genre`` and ``platform`` are
    exact names.  ``sort`` is ``'newest'``, ``'popular'`` or anything else
    for alphabetical order.
    """
    title: Optional[str] = None
    genre: Optional[str] = None
    platform: Optional[str] = None
    sort: Optional[str] = None
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    def __post_init__(self) -> None:
        self.page = _coerce_positive_int('page', self.page, DEFAULT_PAGE)
        self.limit = _coerce_positive_int('limit', self.limit, DEFAULT_LIMIT)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]]) -> 'GameFilter':
        """Build a filter from request-style params; unknown keys are ignored.

        Raises:
            InvalidFilterError: ``page``/``limit`` is not a positive integer.
        """
        params = params or {}
        return cls(
            title=_optional_text(params.get('title')),
            genre=_optional_text(params.get('genre')),
            platform=_optional_text(params.get('platform')),
            sort=_optional_text(params.get('sort')),
            page=params.get('page'),
            limit=params.get('limit'),
        )


def _games_with_genre(name: str) -> Select:
    return (
        select(game_genres.c.game_id)
        .join(Genre, Genre.id == game_genres.c.genre_id)
        .where(Genre.name == name)
    )


def _games_on_platform(name: str) -> Select:
    return (
        select(game_platforms.c.game_id)
        .join(Platform, Platform.id == game_platforms.c.platform_id)
        .where(Platform.name == name)
    )


def _order_by(sort: Optional[str]):
    if sort == SORT_NEWEST:
        return (Game.release_date.desc(), Game.id.desc())
    if sort == SORT_POPULAR:
        # No popularity signal is stored yet; newest ids first.
        return (Game.id.desc(),)
    return (Game.title.asc(), Game.id.asc())


def build_game_query(filters: Optional[GameFilter] = None,
                     game_id: Optional[int] = None) -> Select:
    """Return the SELECT for one game (*game_id*) or a filtered page.

    Rows carry the game columns only, one row per game.  Genre and platform
    names are loaded per page by
    :meth:`~catalog.relations.RelationSynchronizer.names_by_game`.  Genre
    and platform criteria are membership subqueries, so they narrow the
    games without narrowing the relations loaded for them.
    """
    stmt = select(*GAME_COLUMNS)

    if game_id is not None:
        return stmt.where(Game.id == game_id)

    filters = filters or GameFilter()
    conditions = []
    if filters.title:
        conditions.append(
            func.lower(Game.title, type_=String).contains(
                filters.title.lower(), autoescape=True)
        )
    if filters.genre:
        conditions.append(Game.id.in_(_games_with_genre(filters.genre)))
    if filters.platform:
        conditions.append(Game.id.in_(_games_on_platform(filters.platform)))
    if conditions:
        stmt = stmt.where(*conditions)

    return (
        stmt.order_by(*_order_by(filters.sort))
        .limit(filters.limit)
        .offset(filters.offset)
    )
