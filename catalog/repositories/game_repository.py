"""Repository for catalog games and their genre/platform relations."""
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError

from database import Game, Review, make_session_factory

from ..errors import IdentifierConflictError, NotFoundError
from ..query import GameFilter, build_game_query
from ..relations import genre_sync, normalize_names, platform_sync
from ..retry import RetryPolicy
from .base import BaseRepository

REQUIRED_FIELDS = ('title', 'developer', 'publisher', 'release_date')
UPDATABLE_FIELDS = REQUIRED_FIELDS + ('cover_image',)

DEFAULT_ID_ATTEMPTS = 3


def _coerce_date(value: Any) -> Any:
    """Accept ``date``, ``datetime`` or an ISO-8601 string for ``release_date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    return value


def _game_key(game_id: Any) -> int:
    """Game ids arrive as ints or numeric strings; anything else cannot exist."""
    try:
        return int(game_id)
    except (TypeError, ValueError):
        raise NotFoundError('Game', game_id) from None


def _to_record(row, genres: Optional[List[str]] = None,
               platforms: Optional[List[str]] = None) -> Dict:
    return {
        'id': row.id,
        'title': row.title,
        'developer': row.developer,
        'publisher': row.publisher,
        'release_date': row.release_date,
        'cover_image': row.cover_image,
        'genres': genres or [],
        'platforms': platforms or [],
    }


class GameRepository(BaseRepository):
    """CRUD for games with their genres and platforms materialized on read.

    Records are plain dicts::

        {
            "id":           <int>,
            "title":        <str>,
            "developer":    <str>,
            "publisher":    <str>,
            "release_date": <date>,
            "cover_image":  <str | None>,
            "genres":       ["<name>", ...],
            "platforms":    ["<name>", ...]
        }

    Every public method is one transaction executed through the retry
    policy.  Unknown genre/platform names are dropped silently on write.
    """

    def __init__(self, session_factory, retry_policy: Optional[RetryPolicy] = None,
                 id_attempts: int = DEFAULT_ID_ATTEMPTS) -> None:
        super().__init__(session_factory, retry_policy)
        if id_attempts < 1:
            raise ValueError('id_attempts must be at least 1')
        self._id_attempts = id_attempts

    @classmethod
    def from_engine(cls, engine, retry_policy: Optional[RetryPolicy] = None) -> 'GameRepository':
        return cls(make_session_factory(engine), retry_policy)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_games(self, filters: Union[GameFilter, Mapping[str, Any], None] = None) -> List[Dict]:
        """Return one page of games matching *filters*.

        Args:
            filters: A :class:`~catalog.query.GameFilter`, or a mapping with
                any of ``title``, ``genre``, ``platform``, ``sort``, ``page``,
                ``limit``.

        Raises:
            InvalidFilterError: malformed ``page`` or ``limit``.
        """
        if not isinstance(filters, GameFilter):
            filters = GameFilter.from_params(filters)
        games = self._run('list_games', self._list, filters)
        self._log.info("Fetched %d games (page %d)", len(games), filters.page)
        return games

    def get_game(self, game_id: Any) -> Dict:
        """Return the game record or raise :class:`NotFoundError`."""
        return self._run('get_game', self._fetch, _game_key(game_id))

    def list_genres(self) -> List[Dict]:
        """All genres ordered by name."""
        return self._run('list_genres', genre_sync.list_all)

    def list_platforms(self) -> List[Dict]:
        """All platforms ordered by name."""
        return self._run('list_platforms', platform_sync.list_all)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_game(self, data: Mapping[str, Any]) -> Dict:
        """Insert a game and its relations; return the stored record.

        The id is ``MAX(id) + 1``.  If a concurrent creator inserted that id
        first, the primary key rejects the insert and the whole create is
        replayed with a fresh id, up to ``id_attempts`` times.

        Raises:
            IdentifierConflictError: the id kept colliding.
        """
        for attempt in range(1, self._id_attempts + 1):
            try:
                game = self._run('create_game', self._create, data)
            except IdentifierConflictError as exc:
                self._log.warning("Identifier %s taken (attempt %d/%d)",
                                  exc.game_id, attempt, self._id_attempts)
                if attempt == self._id_attempts:
                    raise
                continue
            self._log.info("Created game %s: %s", game['id'], game['title'])
            return game

    def update_game(self, game_id: Any, data: Mapping[str, Any]) -> Dict:
        """Apply a partial update and return the refreshed record.

        Only truthy scalar fields are written, so a field cannot be cleared.
        A non-empty ``genres`` or ``platforms`` list replaces that relation
        entirely; an empty or missing one leaves it as is.

        Raises:
            NotFoundError: no game with *game_id*.
        """
        game = self._run('update_game', self._update, _game_key(game_id), data)
        self._log.info("Updated game %s", game['id'])
        return game

    def delete_game(self, game_id: Any) -> Dict:
        """Delete the game with its relations and reviews.

        Returns:
            ``{'success': True, 'id': game_id}``.

        Raises:
            NotFoundError: no game with *game_id*.
        """
        result = self._run('delete_game', self._delete, _game_key(game_id))
        self._log.info("Deleted game %s", result['id'])
        return result

    # ------------------------------------------------------------------
    # Units of work (run inside one transaction)
    # ------------------------------------------------------------------

    def _records(self, db, rows) -> List[Dict]:
        ids = [row.id for row in rows]
        genres = genre_sync.names_by_game(db, ids)
        platforms = platform_sync.names_by_game(db, ids)
        return [_to_record(row, genres.get(row.id), platforms.get(row.id)) for row in rows]

    def _list(self, db, filters: GameFilter) -> List[Dict]:
        return self._records(db, db.execute(build_game_query(filters)).all())

    def _fetch(self, db, game_id: int) -> Dict:
        row = db.execute(build_game_query(game_id=game_id)).first()
        if row is None:
            raise NotFoundError('Game', game_id)
        return self._records(db, [row])[0]

    def _require_game(self, db, game_id: int) -> None:
        if db.execute(select(Game.id).where(Game.id == game_id)).first() is None:
            raise NotFoundError('Game', game_id)

    def _next_identifier(self, db) -> int:
        current = db.execute(select(func.max(Game.id))).scalar()
        return (current or 0) + 1

    def _create(self, db, data: Mapping[str, Any]) -> Dict:
        game_id = self._next_identifier(db)
        values = {field: data.get(field) for field in REQUIRED_FIELDS}
        values['release_date'] = _coerce_date(values['release_date'])
        values['cover_image'] = data.get('cover_image') or None
        try:
            db.execute(insert(Game).values(id=game_id, **values))
        except IntegrityError as exc:
            # The id is the only unique key on games.
            if any(values[field] is None for field in REQUIRED_FIELDS):
                raise
            raise IdentifierConflictError(game_id, exc) from exc

        genre_sync.replace(db, game_id, data.get('genres'))
        platform_sync.replace(db, game_id, data.get('platforms'))
        return self._fetch(db, game_id)

    def _update(self, db, game_id: int, data: Mapping[str, Any]) -> Dict:
        self._require_game(db, game_id)

        values = {field: data[field] for field in UPDATABLE_FIELDS if data.get(field)}
        if 'release_date' in values:
            values['release_date'] = _coerce_date(values['release_date'])
        if values:
            db.execute(update(Game).where(Game.id == game_id).values(**values))

        genres = normalize_names(data.get('genres'))
        if genres:
            genre_sync.replace(db, game_id, genres)
        platforms = normalize_names(data.get('platforms'))
        if platforms:
            platform_sync.replace(db, game_id, platforms)

        return self._fetch(db, game_id)

    def _delete(self, db, game_id: int) -> Dict:
        self._require_game(db, game_id)
        genre_sync.clear(db, game_id)
        platform_sync.clear(db, game_id)
        db.execute(delete(Review).where(Review.game_id == game_id))
        db.execute(delete(Game).where(Game.id == game_id))
        return {'success': True, 'id': game_id}
