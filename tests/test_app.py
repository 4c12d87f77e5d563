from __future__ import annotations

import io
from unittest.mock import MagicMock

import recipeshare
from recipeshare import create_app
from recipeshare.config import Settings
from recipeshare.errors import StoreError


def create_soup(client, headers, **overrides):
    body = {
        "title": "Soup",
        "ingredients": ["water", "salt"],
        "steps": "Boil.",
        "tags": ["quick"],
    }
    body.update(overrides)
    response = client.post("/api/recipes", json=body, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def test_health_check(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_create_recipe_returns_created_recipe(client, signup):
    user, headers = signup()

    recipe = create_soup(client, headers, imageUrl="https://img.test/soup.png")

    assert recipe["title"] == "Soup"
    assert recipe["author"] == {"id": user["id"], "username": "alice"}
    assert recipe["imageUrl"] == "https://img.test/soup.png"
    assert recipe["comments"] == []
    assert recipe["createdAt"]


def test_create_recipe_requires_token(client, recipes):
    response = client.post("/api/recipes", json={"title": "Soup", "ingredients": ["water"], "steps": "Boil."})

    assert response.status_code == 401
    assert response.get_json()["message"] == "Not authorized, no token"
    assert recipes.list_recipes() == []


def test_create_recipe_rejects_bad_token(client):
    response = client.post(
        "/api/recipes",
        json={"title": "Soup", "ingredients": ["water"], "steps": "Boil."},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


def test_create_recipe_without_title_is_rejected(client, signup, recipes):
    _, headers = signup()

    response = client.post(
        "/api/recipes", json={"title": "", "ingredients": ["water"], "steps": "Boil."}, headers=headers
    )

    assert response.status_code == 400
    assert response.get_json()["message"] == "Title, ingredients, and steps are required"
    assert recipes.list_recipes() == []


def test_list_is_public_and_filters_by_tag(client, signup):
    _, headers = signup()
    create_soup(client, headers, title="Tofu", tags=["vegan"])
    create_soup(client, headers, title="Stew", tags=["hearty"])

    everything = client.get("/api/recipes")
    vegan = client.get("/api/recipes?tag=vegan")

    assert everything.status_code == 200
    assert [recipe["title"] for recipe in everything.get_json()] == ["Stew", "Tofu"]
    assert [recipe["title"] for recipe in vegan.get_json()] == ["Tofu"]


def test_get_recipe_and_missing_recipe(client, signup):
    _, headers = signup()
    recipe = create_soup(client, headers)

    assert client.get(f"/api/recipes/{recipe['id']}").get_json()["title"] == "Soup"

    missing = client.get("/api/recipes/does-not-exist")
    assert missing.status_code == 404
    assert missing.get_json() == {"message": "Recipe not found"}


def test_update_is_author_only_and_partial(client, signup):
    _, owner = signup("alice")
    _, other = signup("bob")
    recipe = create_soup(client, owner)

    forbidden = client.put(f"/api/recipes/{recipe['id']}", json={"title": "Tomato Soup"}, headers=other)
    assert forbidden.status_code == 403
    assert client.get(f"/api/recipes/{recipe['id']}").get_json()["title"] == "Soup"

    response = client.put(f"/api/recipes/{recipe['id']}", json={"title": "Tomato Soup"}, headers=owner)
    assert response.status_code == 200
    updated = response.get_json()
    assert updated["title"] == "Tomato Soup"
    assert updated["ingredients"] == ["water", "salt"]
    assert updated["steps"] == "Boil."
    assert updated["author"] == recipe["author"]


def test_update_missing_recipe(client, signup):
    _, headers = signup()
    response = client.put("/api/recipes/nope", json={"title": "x"}, headers=headers)
    assert response.status_code == 404


def test_delete_recipe(client, signup):
    _, owner = signup("alice")
    _, other = signup("bob")
    recipe = create_soup(client, owner)

    assert client.delete(f"/api/recipes/{recipe['id']}", headers=other).status_code == 403

    response = client.delete(f"/api/recipes/{recipe['id']}", headers=owner)
    assert response.status_code == 200
    assert response.get_json() == {"message": "Recipe removed"}
    assert client.get(f"/api/recipes/{recipe['id']}").status_code == 404


def test_save_and_unsave(client, signup):
    _, owner = signup("alice")
    _, fan = signup("bob")
    recipe = create_soup(client, owner)
    path = f"/api/recipes/{recipe['id']}/save"

    assert client.post(path, headers=fan).status_code == 200

    again = client.post(path, headers=fan)
    assert again.status_code == 400
    assert again.get_json() == {"message": "Recipe already saved"}

    saved = client.get("/api/recipes/saved", headers=fan).get_json()
    assert [item["id"] for item in saved] == [recipe["id"]]

    assert client.delete(path, headers=fan).status_code == 200
    assert client.delete(path, headers=fan).status_code == 200
    assert client.get("/api/auth/me", headers=fan).get_json()["savedRecipes"] == []


def test_deleting_recipe_removes_it_from_saved_lists(client, signup):
    _, owner = signup("alice")
    _, fan = signup("bob")
    recipe = create_soup(client, owner)
    client.post(f"/api/recipes/{recipe['id']}/save", headers=fan)

    client.delete(f"/api/recipes/{recipe['id']}", headers=owner)

    assert client.get("/api/auth/me", headers=fan).get_json()["savedRecipes"] == []


def test_add_comment(client, signup):
    _, owner = signup("alice")
    _, fan = signup("bob")
    recipe = create_soup(client, owner)

    response = client.post(f"/api/recipes/{recipe['id']}/comments", json={"text": "Delicious"}, headers=fan)

    assert response.status_code == 200
    assert response.get_json()["message"] == "Comment added"
    comments = client.get(f"/api/recipes/{recipe['id']}").get_json()["comments"]
    assert [(c["author"]["username"], c["text"]) for c in comments] == [("bob", "Delicious")]

    empty = client.post(f"/api/recipes/{recipe['id']}/comments", json={"text": ""}, headers=fan)
    assert empty.status_code == 400
    missing = client.post("/api/recipes/nope/comments", json={"text": "hi"}, headers=fan)
    assert missing.status_code == 404


def test_upload_image(client, signup, images):
    _, headers = signup()

    response = client.post(
        "/api/recipes/upload",
        data={"image": (io.BytesIO(b"fake-png"), "soup.png")},
        headers=headers,
        content_type="multipart/form-data",
    )

    assert response.status_code == 200
    url = response.get_json()["imageUrl"]
    assert url.startswith("https://images.test/")
    assert url.endswith("_soup.png")
    assert list(images.uploaded.values()) == [b"fake-png"]


def test_upload_rejects_unsupported_format(client, signup, images):
    _, headers = signup()

    response = client.post(
        "/api/recipes/upload",
        data={"image": (io.BytesIO(b"text"), "notes.txt")},
        headers=headers,
        content_type="multipart/form-data",
    )

    assert response.status_code == 400
    assert "Unsupported image format" in response.get_json()["message"]
    assert images.uploaded == {}


def test_unknown_route_returns_json(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert "message" in response.get_json()


def test_request_id_header_is_echoed(client):
    response = client.get("/healthz", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


def test_create_recipe_with_malformed_ingredients_is_rejected(client, signup, recipes):
    _, headers = signup()

    for body in (
        {"title": "Soup", "ingredients": 5, "steps": "Boil."},
        {"title": "Soup", "ingredients": ["water", None], "steps": "Boil.", "tags": [None]},
    ):
        response = client.post("/api/recipes", json=body, headers=headers)
        assert response.status_code == 400
        assert "must be a list of strings" in response.get_json()["message"]

    assert recipes.list_recipes() == []
    assert client.get("/api/recipes?tag=None").get_json() == []


def test_update_recipe_with_malformed_ingredients_is_rejected(client, signup):
    _, headers = signup()
    recipe = create_soup(client, headers)

    response = client.put(f"/api/recipes/{recipe['id']}", json={"ingredients": True}, headers=headers)

    assert response.status_code == 400
    assert response.get_json() == {"message": "Ingredients must be a list of strings"}
    assert client.get(f"/api/recipes/{recipe['id']}").get_json()["ingredients"] == ["water", "salt"]


def test_store_failure_renders_as_server_error(client, recipes, monkeypatch):
    def broken(tag=None):
        raise StoreError("Failed to list recipes.")

    monkeypatch.setattr(recipes, "list_recipes", broken)

    response = client.get("/api/recipes")

    assert response.status_code == 500
    assert response.get_json() == {"message": "Failed to list recipes."}


def test_unexpected_error_is_logged_and_hidden(client, recipes, monkeypatch):
    def broken(tag=None):
        raise RuntimeError("connection pool exhausted")

    logger = MagicMock()
    monkeypatch.setattr(recipes, "list_recipes", broken)
    monkeypatch.setattr(recipeshare, "logger", logger)

    response = client.get("/api/recipes")

    assert response.status_code == 500
    assert response.get_json() == {"message": "Internal server error"}
    logger.exception.assert_called_once_with("unhandled_error")


def test_unknown_log_level_falls_back_to_info(recipes, users, images):
    settings = Settings(secret_key="test-secret", log_level="verbose", log_format="console")

    app = create_app(storage=recipes, users=users, images=images, settings=settings)

    assert app.test_client().get("/healthz").status_code == 200
