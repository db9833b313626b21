"""Keeps a game's genre or platform associations in line with a list of names."""
import logging
from typing import Dict, Iterable, List, Set, Tuple

from sqlalchemy import delete, insert, select

from database import Genre, Platform, game_genres, game_platforms

logger = logging.getLogger('catalog.relations')


def normalize_names(names) -> List[str]:
    """Strip, drop blanks and de-duplicate while keeping the first-seen order."""
    if not names:
        return []
    if isinstance(names, str):
        names = [names]
    seen = []
    for name in names:
        name = str(name).strip() if name is not None else ''
        if name and name not in seen:
            seen.append(name)
    return seen


class RelationSynchronizer:
    """Full-replace sync for one junction table (``game_genres`` or
    ``game_platforms``).

    The new association set is given as reference *names*.  Names that do not
    match an existing reference row are dropped without error; reference rows
    are never created here.  Replacement is computed as a set difference so
    pairs that stay are not touched.

    All methods take the caller's session so they run inside its transaction.
    """

    def __init__(self, junction, reference_model, reference_key: str) -> None:
        self._junction = junction
        self._reference = reference_model
        self._game_col = junction.c.game_id
        self._ref_col = junction.c[reference_key]
        self._key = reference_key
        self.label = reference_model.__tablename__

    def resolve(self, db, names: Iterable[str]) -> Dict[str, int]:
        """Map each known name to its reference id; unknown names are left out."""
        names = normalize_names(names)
        if not names:
            return {}
        rows = db.execute(
            select(self._reference.id, self._reference.name)
            .where(self._reference.name.in_(names))
        ).all()
        resolved = {row.name: row.id for row in rows}
        missing = [name for name in names if name not in resolved]
        if missing:
            logger.debug("Ignoring unknown %s: %s", self.label, ', '.join(missing))
        return resolved

    def current_ids(self, db, game_id: int) -> Set[int]:
        rows = db.execute(
            select(self._ref_col).where(self._game_col == game_id)
        ).scalars()
        return set(rows)

    def replace(self, db, game_id: int, names: Iterable[str]) -> Tuple[Set[int], Set[int]]:
        """Make the game's associations exactly the resolvable *names*.

        Returns:
            ``(added_ids, removed_ids)``.
        """
        wanted = set(self.resolve(db, names).values())
        current = self.current_ids(db, game_id)
        to_add = wanted - current
        to_remove = current - wanted

        if to_remove:
            db.execute(
                delete(self._junction).where(
                    self._game_col == game_id,
                    self._ref_col.in_(to_remove),
                )
            )
        if to_add:
            db.execute(
                insert(self._junction),
                [{'game_id': game_id, self._key: ref_id} for ref_id in sorted(to_add)],
            )
        logger.debug("Game %s %s: +%d -%d", game_id, self.label, len(to_add), len(to_remove))
        return to_add, to_remove

    def clear(self, db, game_id: int) -> int:
        """Remove every association of the game; returns the number removed."""
        result = db.execute(delete(self._junction).where(self._game_col == game_id))
        return result.rowcount

    def names_by_game(self, db, game_ids: Iterable[int]) -> Dict[int, List[str]]:
        """Associated names per game id, each list sorted by name.

        Games without associations are absent from the result.
        """
        game_ids = list(game_ids)
        if not game_ids:
            return {}
        rows = db.execute(
            select(self._game_col, self._reference.name)
            .join(self._reference, self._reference.id == self._ref_col)
            .where(self._game_col.in_(game_ids))
            .order_by(self._game_col, self._reference.name)
        ).all()
        names: Dict[int, List[str]] = {}
        for game_id, name in rows:
            names.setdefault(game_id, []).append(name)
        return names

    def list_all(self, db) -> List[Dict]:
        """Every reference row ordered by name, as ``{'id', 'name'}`` dicts."""
        rows = db.execute(
            select(self._reference.id, self._reference.name)
            .order_by(self._reference.name)
        ).all()
        return [{'id': row.id, 'name': row.name} for row in rows]


genre_sync = RelationSynchronizer(game_genres, Genre, 'genre_id')
platform_sync = RelationSynchronizer(game_platforms, Platform, 'platform_id')
