from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from werkzeug.datastructures import FileStorage

from .models import Comment, Recipe, User


class RecipeRepository(Protocol):
    """Protocol describing the recipe store used by the service layer."""

    def list_recipes(self, tag: Optional[str] = None) -> Iterable[Recipe]:
        """Return stored recipes ordered newest first, optionally by tag."""

    def get_recipe(self, recipe_id: str) -> Recipe:
        """Return a single recipe or raise :class:`NotFoundError` if missing."""

    def add_recipe(
        self,
        *,
        title: str,
        ingredients: List[str],
        steps: str,
        tags: List[str],
        image_url: Optional[str],
        author: str,
    ) -> Recipe:
        """Persist a new recipe and return the stored instance."""

    def update_recipe(self, recipe_id: str, fields: Mapping[str, Any]) -> Recipe:
        """Write the given fields and return the new representation."""

    def delete_recipe(self, recipe_id: str) -> None:
        """Remove a recipe permanently."""

    def append_comment(self, recipe_id: str, comment: Comment) -> Comment:
        """Atomically append a comment to a recipe."""


class UserRepository(Protocol):
    """Protocol describing the user store."""

    def add_user(self, *, username: str, email: str, password_hash: str) -> User:
        """Create a user or raise :class:`ConflictError` if the email is taken."""

    def get_user(self, user_id: str) -> User:
        """Return a user or raise :class:`NotFoundError`."""

    def find_by_email(self, email: str) -> Optional[User]:
        """Return the user registered with ``email`` if any."""

    def get_usernames(self, user_ids: Iterable[str]) -> Dict[str, str]:
        """Map each known user id to its username."""

    def add_saved_recipe(self, user_id: str, recipe_id: str) -> bool:
        """Add a recipe reference; return ``False`` if it was already present."""

    def remove_saved_recipe(self, user_id: str, recipe_id: str) -> None:
        """Remove a recipe reference; absent references are ignored."""

    def remove_saved_recipe_everywhere(self, recipe_id: str) -> int:
        """Drop a recipe reference from every user and return how many changed."""


class ImageStorage(Protocol):
    def upload(self, image: FileStorage) -> str:
        """Store an uploaded image and return the URL it is served from."""


__all__ = ["ImageStorage", "RecipeRepository", "UserRepository"]
