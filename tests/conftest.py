from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pytest

from recipeshare import create_app
from recipeshare.config import Settings
from recipeshare.errors import ConflictError, NotFoundError
from recipeshare.images import build_image_name
from recipeshare.models import Comment, Recipe, User
from recipeshare.service import RecipeService


class InMemoryRecipeStorage:
    """Simple recipe backend used for tests."""

    def __init__(self) -> None:
        self._recipes: Dict[str, Recipe] = {}
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def list_recipes(self, tag: Optional[str] = None) -> List[Recipe]:
        recipes = [
            recipe for recipe in self._recipes.values() if tag is None or tag in recipe.tags
        ]
        return sorted(recipes, key=lambda recipe: recipe.created_at, reverse=True)

    def get_recipe(self, recipe_id: str) -> Recipe:
        try:
            return self._recipes[recipe_id]
        except KeyError:
            raise NotFoundError("Recipe not found") from None

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
        now = self._tick()
        recipe = Recipe(
            id=uuid.uuid4().hex,
            title=title,
            ingredients=list(ingredients),
            steps=steps,
            author=author,
            tags=list(tags),
            image_url=image_url,
            created_at=now,
            updated_at=now,
        )
        self._recipes[recipe.id] = recipe
        return recipe

    def update_recipe(self, recipe_id: str, fields: Mapping[str, Any]) -> Recipe:
        recipe = self.get_recipe(recipe_id)
        for name, value in fields.items():
            if name != "author":
                setattr(recipe, name, value)
        recipe.updated_at = self._tick()
        return recipe

    def delete_recipe(self, recipe_id: str) -> None:
        self.get_recipe(recipe_id)
        del self._recipes[recipe_id]

    def append_comment(self, recipe_id: str, comment: Comment) -> Comment:
        self.get_recipe(recipe_id).comments.append(comment)
        return comment


class InMemoryUserStorage:
    def __init__(self) -> None:
        self._users: Dict[str, User] = {}

    def add_user(self, *, username: str, email: str, password_hash: str) -> User:
        if self.find_by_email(email) is not None:
            raise ConflictError("Email is already registered")
        user = User(
            id=uuid.uuid4().hex,
            username=username,
            email=email,
            password_hash=password_hash,
        )
        self._users[user.id] = user
        return user

    def get_user(self, user_id: str) -> User:
        try:
            return self._users[user_id]
        except KeyError:
            raise NotFoundError("User not found") from None

    def find_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        return next(
            (user for user in self._users.values() if user.email.lower() == wanted), None
        )

    def get_usernames(self, user_ids: Iterable[str]) -> Dict[str, str]:
        return {
            user_id: self._users[user_id].username
            for user_id in user_ids
            if user_id in self._users
        }

    def add_saved_recipe(self, user_id: str, recipe_id: str) -> bool:
        user = self.get_user(user_id)
        if recipe_id in user.saved_recipes:
            return False
        user.saved_recipes.append(recipe_id)
        return True

    def remove_saved_recipe(self, user_id: str, recipe_id: str) -> None:
        user = self.get_user(user_id)
        user.saved_recipes = [saved for saved in user.saved_recipes if saved != recipe_id]

    def remove_saved_recipe_everywhere(self, recipe_id: str) -> int:
        changed = 0
        for user in self._users.values():
            if recipe_id in user.saved_recipes:
                user.saved_recipes.remove(recipe_id)
                changed += 1
        return changed


class InMemoryImageStorage:
    def __init__(self) -> None:
        self.uploaded: Dict[str, bytes] = {}

    def upload(self, image) -> str:
        name = build_image_name(image.filename)
        self.uploaded[name] = image.read()
        return f"https://images.test/{name}"


@pytest.fixture
def recipes() -> InMemoryRecipeStorage:
    return InMemoryRecipeStorage()


@pytest.fixture
def users() -> InMemoryUserStorage:
    return InMemoryUserStorage()


@pytest.fixture
def images() -> InMemoryImageStorage:
    return InMemoryImageStorage()


@pytest.fixture
def service(recipes, users, images) -> RecipeService:
    return RecipeService(recipes, users, images)


@pytest.fixture
def settings() -> Settings:
    return Settings(secret_key="test-secret", log_format="console", log_level="WARNING")


@pytest.fixture
def app(recipes, users, images, settings):
    app = create_app(storage=recipes, users=users, images=images, settings=settings)
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def signup(client):
    """Register through the API and return ``(user_json, auth_headers)``."""

    def _signup(username: str = "alice", email: Optional[str] = None, password: str = "secret123"):
        response = client.post(
            "/api/auth/register",
            json={
                "username": username,
                "email": email or f"{username}@example.com",
                "password": password,
            },
        )
        assert response.status_code == 201, response.get_json()
        data = response.get_json()
        return data["user"], {"Authorization": f"Bearer {data['token']}"}

    return _signup
