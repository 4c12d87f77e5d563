"""HTTP client for the recipeshare API.

Authenticated calls take a :class:`Session` argument; the client itself holds
no token, so several users can share one client instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional, Sequence

import httpx


class ApiError(Exception):
    """Raised for any non-2xx response."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


@dataclass(frozen=True)
class Session:
    token: str
    user_id: str
    username: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


class RecipeShareClient:
    def __init__(
        self,
        base_url: str,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._http = httpx.Client(base_url=base_url, transport=transport, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "RecipeShareClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def register(self, username: str, email: str, password: str) -> Session:
        data = self._request(
            "POST",
            "/api/auth/register",
            json={"username": username, "email": email, "password": password},
        )
        return self._session(data)

    def login(self, email: str, password: str) -> Session:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        return self._session(data)

    def me(self, session: Session) -> Dict[str, Any]:
        return self._request("GET", "/api/auth/me", session=session)

    def list_recipes(self, tags: Sequence[str] = ()) -> List[Dict[str, Any]]:
        params = [("tag", tag) for tag in tags]
        return self._request("GET", "/api/recipes", params=params)

    def get_recipe(self, recipe_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/recipes/{recipe_id}")

    def create_recipe(
        self,
        session: Session,
        *,
        title: str,
        ingredients: List[str],
        steps: str,
        tags: Optional[List[str]] = None,
        image_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"title": title, "ingredients": ingredients, "steps": steps}
        if tags is not None:
            body["tags"] = tags
        if image_url is not None:
            body["imageUrl"] = image_url
        return self._request("POST", "/api/recipes", session=session, json=body)

    def update_recipe(self, session: Session, recipe_id: str, **fields: Any) -> Dict[str, Any]:
        """Send only the given fields; ``image_url`` maps to ``imageUrl``."""

        if "image_url" in fields:
            fields["imageUrl"] = fields.pop("image_url")
        return self._request("PUT", f"/api/recipes/{recipe_id}", session=session, json=fields)

    def delete_recipe(self, session: Session, recipe_id: str) -> None:
        self._request("DELETE", f"/api/recipes/{recipe_id}", session=session)

    def save_recipe(self, session: Session, recipe_id: str) -> None:
        self._request("POST", f"/api/recipes/{recipe_id}/save", session=session)

    def unsave_recipe(self, session: Session, recipe_id: str) -> None:
        self._request("DELETE", f"/api/recipes/{recipe_id}/save", session=session)

    def saved_recipes(self, session: Session) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/recipes/saved", session=session)

    def add_comment(self, session: Session, recipe_id: str, text: str) -> Dict[str, Any]:
        data = self._request(
            "POST", f"/api/recipes/{recipe_id}/comments", session=session, json={"text": text}
        )
        return data["comment"]

    def upload_image(
        self, session: Session, filename: str, content: BinaryIO, content_type: str = "image/jpeg"
    ) -> str:
        data = self._request(
            "POST",
            "/api/recipes/upload",
            session=session,
            files={"image": (filename, content, content_type)},
        )
        return data["imageUrl"]

    def _request(
        self, method: str, url: str, *, session: Optional[Session] = None, **kwargs: Any
    ) -> Any:
        headers = session.headers if session else None
        response = self._http.request(method, url, headers=headers, **kwargs)

        if response.is_error:
            try:
                message = response.json().get("message", response.reason_phrase)
            except ValueError:
                message = response.text or response.reason_phrase
            raise ApiError(response.status_code, message)

        return response.json() if response.content else None

    @staticmethod
    def _session(data: Dict[str, Any]) -> Session:
        user = data["user"]
        return Session(token=data["token"], user_id=user["id"], username=user["username"])


__all__ = ["ApiError", "RecipeShareClient", "Session"]
