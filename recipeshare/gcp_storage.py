from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import structlog
from google.api_core import exceptions as gcloud_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .errors import ConflictError, NotFoundError, StoreError
from .models import Comment, Recipe, User


logger = structlog.get_logger(__name__)


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except gcloud_exceptions.GoogleAPICallError as exc:
        logger.error("firestore_call_failed", action=action, error=str(exc))
        raise StoreError(f"Failed to {action}.") from exc


def _timestamp(value: Any) -> Optional[datetime]:
    return value if isinstance(value, datetime) else None


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class FirestoreRecipeStorage:
    """Recipe store backed by a Firestore collection."""

    def __init__(
        self,
        *,
        project: Optional[str] = None,
        collection_name: str = "recipes",
        client: Optional[firestore.Client] = None,
    ) -> None:
        self._client = client or firestore.Client(project=project)
        self._collection = self._client.collection(collection_name)

    def list_recipes(self, tag: Optional[str] = None) -> List[Recipe]:
        with _store_errors("list recipes"):
            if tag:
                # array_contains plus order_by would need a composite index.
                query = self._collection.where(filter=FieldFilter("tags", "array_contains", tag))
                recipes = [self._doc_to_recipe(doc.id, doc.to_dict() or {}) for doc in query.stream()]
                recipes.sort(
                    key=lambda recipe: recipe.created_at or datetime.min.replace(tzinfo=timezone.utc),
                    reverse=True,
                )
                return recipes

            query = self._collection.order_by("created_at", direction=firestore.Query.DESCENDING)
            return [self._doc_to_recipe(doc.id, doc.to_dict() or {}) for doc in query.stream()]

    def get_recipe(self, recipe_id: str) -> Recipe:
        with _store_errors("load recipe"):
            snapshot = self._collection.document(recipe_id).get()

        if not snapshot.exists:
            raise NotFoundError("Recipe not found")

        return self._doc_to_recipe(snapshot.id, snapshot.to_dict() or {})

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
        doc = {
            "title": title,
            "ingredients": ingredients,
            "steps": steps,
            "tags": tags,
            "image_url": image_url,
            "author": author,
            "comments": [],
            "created_at": firestore.SERVER_TIMESTAMP,
            "updated_at": firestore.SERVER_TIMESTAMP,
        }

        with _store_errors("save recipe"):
            doc_ref = self._collection.document()
            doc_ref.set(doc)
            snapshot = doc_ref.get()

        return self._doc_to_recipe(snapshot.id, snapshot.to_dict() or {})

    def update_recipe(self, recipe_id: str, fields: Mapping[str, Any]) -> Recipe:
        doc_ref = self._collection.document(recipe_id)
        update_doc = dict(fields)
        update_doc.pop("author", None)
        update_doc["updated_at"] = firestore.SERVER_TIMESTAMP

        with _store_errors("update recipe"):
            try:
                doc_ref.update(update_doc)
            except gcloud_exceptions.NotFound as exc:
                raise NotFoundError("Recipe not found") from exc
            snapshot = doc_ref.get()

        return self._doc_to_recipe(snapshot.id, snapshot.to_dict() or {})

    def delete_recipe(self, recipe_id: str) -> None:
        doc_ref = self._collection.document(recipe_id)

        with _store_errors("delete recipe"):
            snapshot = doc_ref.get()
            if not snapshot.exists:
                raise NotFoundError("Recipe not found")
            doc_ref.delete()

    def append_comment(self, recipe_id: str, comment: Comment) -> Comment:
        entry = {
            "author": comment.author,
            "text": comment.text,
            "created_at": comment.created_at,
        }

        with _store_errors("add comment"):
            try:
                self._collection.document(recipe_id).update(
                    {"comments": firestore.ArrayUnion([entry])}
                )
            except gcloud_exceptions.NotFound as exc:
                raise NotFoundError("Recipe not found") from exc

        return comment

    def _doc_to_recipe(self, doc_id: str, data: dict) -> Recipe:
        ingredients = data.get("ingredients")
        parsed_ingredients = ingredients if isinstance(ingredients, list) else []

        comments = [
            Comment(
                author=entry.get("author", ""),
                text=entry.get("text", ""),
                created_at=_timestamp(entry.get("created_at")),
            )
            for entry in data.get("comments") or []
            if isinstance(entry, dict)
        ]

        return Recipe(
            id=doc_id,
            title=data.get("title", ""),
            ingredients=parsed_ingredients,
            steps=data.get("steps", ""),
            author=data.get("author", ""),
            tags=list(data.get("tags") or []),
            image_url=data.get("image_url"),
            comments=comments,
            created_at=_timestamp(data.get("created_at")),
            updated_at=_timestamp(data.get("updated_at")),
        )


class FirestoreUserStorage:
    """User store backed by Firestore.

    Email uniqueness is enforced with a companion collection keyed by the
    normalized address; the index document and the user document are written
    in one batch so neither exists without the other.
    """

    def __init__(
        self,
        *,
        project: Optional[str] = None,
        collection_name: str = "users",
        client: Optional[firestore.Client] = None,
    ) -> None:
        self._client = client or firestore.Client(project=project)
        self._collection = self._client.collection(collection_name)
        self._emails = self._client.collection(f"{collection_name}_emails")

    def add_user(self, *, username: str, email: str, password_hash: str) -> User:
        user_ref = self._collection.document()
        email_ref = self._emails.document(_normalize_email(email))

        batch = self._client.batch()
        batch.create(email_ref, {"user_id": user_ref.id})
        batch.set(
            user_ref,
            {
                "username": username,
                "email": email.strip(),
                "password_hash": password_hash,
                "saved_recipes": [],
                "created_at": firestore.SERVER_TIMESTAMP,
            },
        )

        with _store_errors("register user"):
            try:
                batch.commit()
            except gcloud_exceptions.AlreadyExists as exc:
                raise ConflictError("Email is already registered") from exc

        return User(
            id=user_ref.id,
            username=username,
            email=email.strip(),
            password_hash=password_hash,
        )

    def get_user(self, user_id: str) -> User:
        with _store_errors("load user"):
            snapshot = self._collection.document(user_id).get()

        if not snapshot.exists:
            raise NotFoundError("User not found")

        return self._doc_to_user(snapshot.id, snapshot.to_dict() or {})

    def find_by_email(self, email: str) -> Optional[User]:
        with _store_errors("look up user"):
            index = self._emails.document(_normalize_email(email)).get()

        if not index.exists:
            return None

        user_id = (index.to_dict() or {}).get("user_id")
        if not user_id:
            return None

        try:
            return self.get_user(user_id)
        except NotFoundError:
            return None

    def get_usernames(self, user_ids: Iterable[str]) -> Dict[str, str]:
        refs = [self._collection.document(user_id) for user_id in set(user_ids) if user_id]
        if not refs:
            return {}

        with _store_errors("load users"):
            snapshots = list(self._client.get_all(refs, field_paths=["username"]))

        return {
            snapshot.id: (snapshot.to_dict() or {}).get("username", "")
            for snapshot in snapshots
            if snapshot.exists
        }

    def add_saved_recipe(self, user_id: str, recipe_id: str) -> bool:
        user_ref = self._collection.document(user_id)

        @firestore.transactional
        def _add(transaction: firestore.Transaction) -> bool:
            snapshot = user_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError("User not found")

            saved = (snapshot.to_dict() or {}).get("saved_recipes") or []
            if recipe_id in saved:
                return False

            transaction.update(user_ref, {"saved_recipes": firestore.ArrayUnion([recipe_id])})
            return True

        with _store_errors("save recipe"):
            return _add(self._client.transaction())

    def remove_saved_recipe(self, user_id: str, recipe_id: str) -> None:
        with _store_errors("unsave recipe"):
            try:
                self._collection.document(user_id).update(
                    {"saved_recipes": firestore.ArrayRemove([recipe_id])}
                )
            except gcloud_exceptions.NotFound as exc:
                raise NotFoundError("User not found") from exc

    def remove_saved_recipe_everywhere(self, recipe_id: str) -> int:
        query = self._collection.where(
            filter=FieldFilter("saved_recipes", "array_contains", recipe_id)
        )

        changed = 0
        with _store_errors("prune saved recipes"):
            for doc in query.stream():
                doc.reference.update({"saved_recipes": firestore.ArrayRemove([recipe_id])})
                changed += 1

        return changed

    def _doc_to_user(self, doc_id: str, data: dict) -> User:
        return User(
            id=doc_id,
            username=data.get("username", ""),
            email=data.get("email", ""),
            password_hash=data.get("password_hash", ""),
            saved_recipes=list(data.get("saved_recipes") or []),
        )


__all__ = ["FirestoreRecipeStorage", "FirestoreUserStorage"]
