from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Protocol

import pandas as pd

from .errors import CollectionNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionRecord:
    id: str
    restaurant_ids: tuple[str, ...]
    owner_id: str | None = None
    group_id: str | None = None
    name: str = ""


class CollectionStore(Protocol):
    def get_collection(self, collection_id: str) -> CollectionRecord:
        ...

    def list_restaurant_ids(self, collection_id: str) -> list[str]:
        ...

    def restaurant_name(self, restaurant_id: str) -> str | None:
        ...

    def find_restaurant_ids(self, text: str) -> set[str]:
        ...


class GroupDirectory(Protocol):
    def is_admin(self, group_id: str, user_id: str) -> bool:
        ...


def _dedupe(ids: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(str(i) for i in ids))


def _optional(value) -> str | None:
    if pd.isna(value) or not str(value).strip():
        return None
    return str(value).strip()


class InMemoryCollectionStore:
    """
    Collections plus a restaurant table for resolving names.

    Restaurants are held as a DataFrame with ``id`` and ``name`` columns and a
    lowercase ``name_lower`` column for case-insensitive search.
    """

    def __init__(self, restaurants: pd.DataFrame | None = None) -> None:
        self._collections: dict[str, CollectionRecord] = {}
        self._restaurants = self._prepare(
            restaurants if restaurants is not None else pd.DataFrame(columns=["id", "name"])
        )

    @staticmethod
    def _prepare(df: pd.DataFrame) -> pd.DataFrame:
        df = df.reset_index(drop=True)
        df["id"] = df["id"].astype(str)
        df["name_lower"] = df["name"].fillna("").astype(str).str.lower()
        df = df.drop_duplicates(subset="id", keep="last")
        return df.set_index("id", drop=False).rename_axis(None)

    @classmethod
    def from_csv(
        cls, restaurants_path: Path, collections_path: Path | None = None,
    ) -> "InMemoryCollectionStore":
        """
        Load the restaurant table and, when given, the collection table.

        A missing file is logged and leaves that part empty.
        """
        if restaurants_path.exists():
            store = cls(pd.read_csv(restaurants_path, dtype={"id": str}))
        else:
            logger.warning("Restaurant file %s not found; no restaurant names loaded", restaurants_path)
            store = cls()

        if collections_path is not None:
            if collections_path.exists():
                store.load_collections(pd.read_csv(collections_path, dtype=str))
            else:
                logger.warning("Collection file %s not found; no collections loaded", collections_path)

        logger.info(
            "Loaded %d restaurants and %d collections",
            len(store._restaurants), len(store._collections),
        )
        return store

    def load_collections(self, df: pd.DataFrame) -> None:
        """
        Register collections from one row per ``(collection_id, restaurant_id)``.

        Optional ``name``, ``owner_id`` and ``group_id`` columns are read from
        the first row of each collection. A row with a blank ``restaurant_id``
        declares an empty collection.
        """
        df = df.copy()
        for column in ("name", "owner_id", "group_id"):
            if column not in df.columns:
                df[column] = None

        for collection_id, rows in df.groupby("collection_id", sort=False):
            first = rows.iloc[0]
            self.add_collection(
                str(collection_id),
                rows["restaurant_id"].dropna().astype(str),
                owner_id=_optional(first["owner_id"]),
                group_id=_optional(first["group_id"]),
                name=_optional(first["name"]) or "",
            )

    def add_collection(
        self,
        collection_id: str,
        restaurant_ids: Iterable[str],
        owner_id: str | None = None,
        group_id: str | None = None,
        name: str = "",
    ) -> CollectionRecord:
        record = CollectionRecord(
            id=collection_id,
            restaurant_ids=_dedupe(restaurant_ids),
            owner_id=owner_id,
            group_id=group_id,
            name=name,
        )
        self._collections[collection_id] = record
        return record

    def get_collection(self, collection_id: str) -> CollectionRecord:
        record = self._collections.get(collection_id)
        if record is None:
            raise CollectionNotFoundError(f"Collection {collection_id} not found")
        return record

    def list_restaurant_ids(self, collection_id: str) -> list[str]:
        return list(self.get_collection(collection_id).restaurant_ids)

    def restaurant_name(self, restaurant_id: str) -> str | None:
        if restaurant_id not in self._restaurants.index:
            return None
        name = self._restaurants.at[restaurant_id, "name"]
        return str(name) if pd.notna(name) else None

    def find_restaurant_ids(self, text: str) -> set[str]:
        needle = text.strip().lower()
        if not needle:
            return set(self._restaurants["id"])
        mask = self._restaurants["name_lower"].str.contains(needle, regex=False, na=False)
        return set(self._restaurants.loc[mask, "id"])


@dataclass
class InMemoryGroupDirectory:
    admins: dict[str, set[str]] = field(default_factory=dict)

    def set_admins(self, group_id: str, admin_ids: Iterable[str]) -> None:
        self.admins[group_id] = set(admin_ids)

    def is_admin(self, group_id: str, user_id: str) -> bool:
        return user_id in self.admins.get(group_id, set())

    @classmethod
    def from_csv(cls, path: Path) -> "InMemoryGroupDirectory":
        """Load admins from rows of ``group_id, user_id``; a missing file yields no admins."""
        directory = cls()
        if not path.exists():
            logger.warning("Group admin file %s not found; no group admins loaded", path)
            return directory
        df = pd.read_csv(path, dtype=str).dropna(subset=["group_id", "user_id"])
        for group_id, rows in df.groupby("group_id"):
            directory.set_admins(str(group_id), rows["user_id"].str.strip())
        return directory
