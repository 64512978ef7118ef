"""Interface commune des index vectoriels (recherche cosinus filtrable par domaine)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from curator.domain.errors import DimensionMismatchError
from curator.domain.similarity import SimilarItem


class VectorIndex(ABC):
    """Index de vecteurs d'éléments."""

    name: str = "base"

    def __init__(self, dimensions: int) -> None:
        self.dimensions = dimensions

    def check_dimensions(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(vector))

    @abstractmethod
    def add(self, item_id: str, vector: Sequence[float], domain: str) -> None:
        """Ajoute ou remplace le vecteur d'un élément."""
        raise NotImplementedError

    @abstractmethod
    def search(
        self, vector: Sequence[float], k: int = 10, domain: str | None = None
    ) -> list[SimilarItem]:
        """Les k éléments les plus proches, par similarité décroissante."""
        raise NotImplementedError

    @abstractmethod
    def get(self, item_id: str) -> list[float] | None:
        raise NotImplementedError

    @abstractmethod
    def size(self) -> int:
        raise NotImplementedError

    def add_many(self, rows: Sequence[tuple[str, str, Sequence[float]]]) -> int:
        """Charge des triplets (id, domaine, vecteur)."""
        for item_id, domain, vector in rows:
            self.add(item_id, vector, domain)
        return len(rows)
