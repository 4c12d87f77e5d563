from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional


class _Unset:
    """Marker for a patch field that was not supplied."""

    _instance = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Comment:
    """A single comment appended to a recipe."""

    author: str
    text: str
    created_at: datetime
    author_name: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "author": {"id": self.author, "username": self.author_name},
            "text": self.text,
            "createdAt": _isoformat(self.created_at),
        }


@dataclass
class Recipe:
    """Domain object representing a stored recipe."""

    id: str
    title: str
    ingredients: List[str]
    steps: str
    author: str
    tags: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    comments: List[Comment] = field(default_factory=list)
    author_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "ingredients": list(self.ingredients),
            "steps": self.steps,
            "tags": list(self.tags),
            "imageUrl": self.image_url,
            "author": {"id": self.author, "username": self.author_name},
            "comments": [comment.to_json() for comment in self.comments],
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


@dataclass
class User:
    """A registered account. ``password_hash`` never leaves the server."""

    id: str
    username: str
    email: str
    password_hash: str = field(repr=False)
    saved_recipes: List[str] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "savedRecipes": list(self.saved_recipes),
        }


@dataclass
class RecipePatch:
    """Partial update of a recipe.

    Every field defaults to :data:`UNSET`. Only supplied fields are written, so
    an empty value is distinguishable from a field that was left out.
    """

    title: Any = UNSET
    ingredients: Any = UNSET
    steps: Any = UNSET
    tags: Any = UNSET
    image_url: Any = UNSET

    _JSON_KEYS = {
        "title": "title",
        "ingredients": "ingredients",
        "steps": "steps",
        "tags": "tags",
        "imageUrl": "image_url",
    }

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "RecipePatch":
        values = {
            attribute: payload[key]
            for key, attribute in cls._JSON_KEYS.items()
            if key in payload
        }
        return cls(**values)

    def supplied(self) -> Dict[str, Any]:
        """Return the supplied fields keyed by attribute name."""

        return {
            attribute: getattr(self, attribute)
            for attribute in self._JSON_KEYS.values()
            if getattr(self, attribute) is not UNSET
        }


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Strip, drop blanks and de-duplicate tags keeping first-seen order."""

    seen: List[str] = []
    for tag in tags:
        cleaned = tag.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


def clean_ingredients(ingredients: Iterable[str]) -> List[str]:
    return [item.strip() for item in ingredients if item.strip()]


__all__ = [
    "Comment",
    "Recipe",
    "RecipePatch",
    "UNSET",
    "User",
    "clean_ingredients",
    "normalize_tags",
]
