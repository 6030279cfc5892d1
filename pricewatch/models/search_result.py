# pricewatch/models/search_result.py

"""Normalised search result returned by adapters and the cache."""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class SearchResult:
    """A single product listing found on one marketplace."""

    name: str
    price: float
    url: str
    marketplace: str
    image_url: str | None = None
    in_stock: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict for JSON storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchResult":
        """Rebuild a SearchResult from its stored dict form."""
        image = data.get("image_url")
        return cls(
            name=str(data.get("name", "")),
            price=float(data.get("price", 0.0)),
            url=str(data.get("url", "")),
            marketplace=str(data.get("marketplace", "")),
            image_url=str(image) if image else None,
            in_stock=bool(data.get("in_stock", True)),
        )
