from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog
from werkzeug.datastructures import FileStorage

from .errors import AlreadySavedError, AuthError, NotFoundError, PermissionDeniedError, ValidationError
from .images import allowed_image
from .models import Comment, Recipe, RecipePatch, clean_ingredients, normalize_tags
from .storage import ImageStorage, RecipeRepository, UserRepository


logger = structlog.get_logger(__name__)


def _require_caller(caller_id: Optional[str]) -> str:
    if not caller_id:
        raise AuthError("Not authorized, no token")
    return caller_id


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _string_items(value: Any, label: str) -> List[str]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
        raise ValidationError(f"{label} must be a list of strings")
    return list(value)


def _tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return normalize_tags(_string_items(value, "Tags"))


def _ingredients(value: Any) -> List[str]:
    """Accept a list of strings or newline separated text."""

    if value is None:
        return []
    if isinstance(value, str):
        value = value.splitlines()
    return clean_ingredients(_string_items(value, "Ingredients"))


def _image_url(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("imageUrl must be a string")
    return value.strip() or None


class RecipeService:
    """Authorization and data integrity rules for recipes, saves and comments.

    The service trusts the ``caller_id`` it is given; authenticating the
    request is the job of :mod:`recipeshare.auth`.
    """

    def __init__(
        self,
        recipes: RecipeRepository,
        users: UserRepository,
        images: Optional[ImageStorage] = None,
    ) -> None:
        self._recipes = recipes
        self._users = users
        self._images = images

    def create(
        self,
        *,
        title: Any,
        ingredients: Any,
        steps: Any,
        tags: Any = None,
        image_url: Any = None,
        caller_id: Optional[str],
    ) -> Recipe:
        author = _require_caller(caller_id)

        title = _text(title)
        steps = _text(steps)
        ingredients = _ingredients(ingredients)
        if not title or not ingredients or not steps:
            raise ValidationError("Title, ingredients, and steps are required")

        recipe = self._recipes.add_recipe(
            title=title,
            ingredients=ingredients,
            steps=steps,
            tags=_tags(tags),
            image_url=_image_url(image_url),
            author=author,
        )
        logger.info("recipe_created", recipe_id=recipe.id, author=author)
        return self._resolve([recipe])[0]

    def list(self, tags: Optional[Sequence[str]] = None) -> List[Recipe]:
        """Return recipes carrying every tag in ``tags`` (all recipes if empty)."""

        wanted = normalize_tags(list(tags or []))
        if not wanted:
            return self._resolve(self._recipes.list_recipes())

        first, rest = wanted[0], wanted[1:]
        recipes = [
            recipe
            for recipe in self._recipes.list_recipes(tag=first)
            if all(tag in recipe.tags for tag in rest)
        ]
        return self._resolve(recipes)

    def get(self, recipe_id: str) -> Recipe:
        return self._resolve([self._recipes.get_recipe(recipe_id)])[0]

    def update(self, recipe_id: str, patch: RecipePatch, *, caller_id: Optional[str]) -> Recipe:
        caller = _require_caller(caller_id)
        recipe = self._recipes.get_recipe(recipe_id)
        self._check_owner(recipe, caller, "update")

        fields = self._validate_patch(patch)
        if not fields:
            return self._resolve([recipe])[0]

        updated = self._recipes.update_recipe(recipe_id, fields)
        logger.info("recipe_updated", recipe_id=recipe_id, fields=sorted(fields))
        return self._resolve([updated])[0]

    def delete(self, recipe_id: str, *, caller_id: Optional[str]) -> None:
        caller = _require_caller(caller_id)
        recipe = self._recipes.get_recipe(recipe_id)
        self._check_owner(recipe, caller, "delete")

        self._recipes.delete_recipe(recipe_id)
        pruned = self._users.remove_saved_recipe_everywhere(recipe_id)
        logger.info("recipe_deleted", recipe_id=recipe_id, pruned_saves=pruned)

    def save(self, recipe_id: str, *, caller_id: Optional[str]) -> None:
        caller = _require_caller(caller_id)
        self._recipes.get_recipe(recipe_id)

        if not self._users.add_saved_recipe(caller, recipe_id):
            raise AlreadySavedError("Recipe already saved")
        logger.info("recipe_saved", recipe_id=recipe_id, user_id=caller)

    def unsave(self, recipe_id: str, *, caller_id: Optional[str]) -> None:
        caller = _require_caller(caller_id)
        self._users.remove_saved_recipe(caller, recipe_id)
        logger.info("recipe_unsaved", recipe_id=recipe_id, user_id=caller)

    def saved(self, *, caller_id: Optional[str]) -> List[Recipe]:
        caller = _require_caller(caller_id)
        user = self._users.get_user(caller)

        recipes = []
        for recipe_id in user.saved_recipes:
            try:
                recipes.append(self._recipes.get_recipe(recipe_id))
            except NotFoundError:
                logger.warning("stale_saved_recipe", recipe_id=recipe_id, user_id=caller)
        return self._resolve(recipes)

    def add_comment(self, recipe_id: str, text: Any, *, caller_id: Optional[str]) -> Comment:
        caller = _require_caller(caller_id)
        self._recipes.get_recipe(recipe_id)

        text = _text(text)
        if not text:
            raise ValidationError("Comment text is required")

        comment = Comment(author=caller, text=text, created_at=datetime.now(timezone.utc))
        stored = self._recipes.append_comment(recipe_id, comment)
        stored.author_name = self._users.get_usernames([caller]).get(caller)
        logger.info("comment_added", recipe_id=recipe_id, author=caller)
        return stored

    def upload_image(self, image: Optional[FileStorage], *, caller_id: Optional[str]) -> str:
        caller = _require_caller(caller_id)
        if self._images is None:
            raise ValidationError("Image uploads are not configured")
        if image is None or not image.filename:
            raise ValidationError("No image file provided.")
        if not allowed_image(image.filename):
            raise ValidationError(
                "Unsupported image format. Allowed formats: PNG, JPG, JPEG, GIF, WEBP."
            )

        url = self._images.upload(image)
        logger.info("image_uploaded", user_id=caller, url=url)
        return url

    def _check_owner(self, recipe: Recipe, caller: str, action: str) -> None:
        if recipe.author != caller:
            logger.warning("recipe_access_denied", recipe_id=recipe.id, caller=caller, action=action)
            raise PermissionDeniedError(f"Not authorized to {action} this recipe")

    def _validate_patch(self, patch: RecipePatch) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        supplied = patch.supplied()

        for name in ("title", "steps"):
            if name in supplied:
                value = _text(supplied[name])
                if not value:
                    raise ValidationError(f"{name.capitalize()} cannot be empty")
                fields[name] = value

        if "ingredients" in supplied:
            ingredients = _ingredients(supplied["ingredients"])
            if not ingredients:
                raise ValidationError("Ingredients cannot be empty")
            fields["ingredients"] = ingredients

        if "tags" in supplied:
            fields["tags"] = _tags(supplied["tags"])

        if "image_url" in supplied:
            fields["image_url"] = _image_url(supplied["image_url"])

        return fields

    def _resolve(self, recipes: Iterable[Recipe]) -> List[Recipe]:
        """Fill author and comment author display names."""

        recipes = list(recipes)
        ids = {recipe.author for recipe in recipes}
        ids.update(comment.author for recipe in recipes for comment in recipe.comments)
        names = self._users.get_usernames(ids)

        for recipe in recipes:
            recipe.author_name = names.get(recipe.author)
            for comment in recipe.comments:
                comment.author_name = names.get(comment.author)
        return recipes


__all__ = ["RecipeService"]
