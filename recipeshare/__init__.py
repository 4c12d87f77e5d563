from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import structlog
from flask import Flask, Response, current_app, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .auth import AuthService, TokenCodec, current_user_id, login_required
from .config import Settings
from .errors import RecipeShareError, ValidationError
from .gcp_storage import FirestoreRecipeStorage, FirestoreUserStorage
from .images import GcsImageStorage, LocalImageStorage
from .logging_config import configure_logging, init_request_logging
from .models import Recipe, RecipePatch
from .service import RecipeService
from .storage import ImageStorage, RecipeRepository, UserRepository


logger = structlog.get_logger(__name__)


def create_app(
    storage: Optional[RecipeRepository] = None,
    users: Optional[UserRepository] = None,
    images: Optional[ImageStorage] = None,
    settings: Optional[Settings] = None,
) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    storage, users:
        Optional recipe and user repositories. When ``None`` the Firestore
        implementations configured through environment variables are used.
    images:
        Optional image backend. Defaults to Cloud Storage when ``GCS_BUCKET``
        is set and to a local upload directory otherwise.
    settings:
        Optional configuration, read from the environment when ``None``.
    """

    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_format)

    app = Flask(__name__)
    app.config.setdefault("MAX_CONTENT_LENGTH", settings.max_upload_mb * 1024 * 1024)
    app.secret_key = settings.secret_key

    if storage is None:
        storage = FirestoreRecipeStorage(
            project=settings.gcp_project, collection_name=settings.recipes_collection
        )
    if users is None:
        users = FirestoreUserStorage(
            project=settings.gcp_project, collection_name=settings.users_collection
        )

    if images is None:
        if settings.gcs_bucket:
            images = GcsImageStorage(settings.gcs_bucket, project=settings.gcp_project)
        else:
            images = LocalImageStorage(Path(app.instance_path) / settings.upload_dir)

    tokens = TokenCodec(settings.secret_key, ttl=timedelta(minutes=settings.token_ttl_minutes))
    app.config["RECIPE_SERVICE"] = RecipeService(storage, users, images)
    app.config["AUTH_SERVICE"] = AuthService(users, tokens)
    app.config["USER_STORAGE"] = users

    CORS(app, resources={r"/api/*": {"origins": settings.cors_origins}})
    init_request_logging(app)
    _register_error_handlers(app)

    def service() -> RecipeService:
        return current_app.config["RECIPE_SERVICE"]

    def auth_service() -> AuthService:
        return current_app.config["AUTH_SERVICE"]

    @app.get("/healthz")
    def healthz() -> Response:
        return jsonify(status="ok")

    @app.post("/api/auth/register")
    def register() -> Tuple[Response, int]:
        payload = _json_body()
        user, token = auth_service().register(
            username=payload.get("username"),
            email=payload.get("email"),
            password=payload.get("password"),
        )
        return jsonify(user=user.to_json(), token=token), 201

    @app.post("/api/auth/login")
    def login() -> Response:
        payload = _json_body()
        user, token = auth_service().login(
            email=payload.get("email"),
            password=payload.get("password"),
        )
        return jsonify(user=user.to_json(), token=token)

    @app.get("/api/auth/me")
    @login_required
    def me() -> Response:
        user = current_app.config["USER_STORAGE"].get_user(current_user_id())
        return jsonify(user.to_json())

    @app.post("/api/recipes/upload")
    @login_required
    def upload_image() -> Response:
        url = service().upload_image(request.files.get("image"), caller_id=current_user_id())
        return jsonify(imageUrl=url)

    @app.post("/api/recipes")
    @login_required
    def create_recipe() -> Tuple[Response, int]:
        payload = _json_body()
        recipe = service().create(
            title=payload.get("title"),
            ingredients=payload.get("ingredients"),
            steps=payload.get("steps"),
            tags=payload.get("tags"),
            image_url=payload.get("imageUrl"),
            caller_id=current_user_id(),
        )
        return jsonify(recipe.to_json()), 201

    @app.get("/api/recipes")
    def list_recipes() -> Response:
        tags = request.args.getlist("tag")
        return jsonify(_recipes_json(service().list(tags)))

    @app.get("/api/recipes/saved")
    @login_required
    def saved_recipes() -> Response:
        return jsonify(_recipes_json(service().saved(caller_id=current_user_id())))

    @app.get("/api/recipes/<recipe_id>")
    def get_recipe(recipe_id: str) -> Response:
        return jsonify(service().get(recipe_id).to_json())

    @app.put("/api/recipes/<recipe_id>")
    @login_required
    def update_recipe(recipe_id: str) -> Response:
        patch = RecipePatch.from_json(_json_body())
        recipe = service().update(recipe_id, patch, caller_id=current_user_id())
        return jsonify(recipe.to_json())

    @app.delete("/api/recipes/<recipe_id>")
    @login_required
    def delete_recipe(recipe_id: str) -> Response:
        service().delete(recipe_id, caller_id=current_user_id())
        return jsonify(message="Recipe removed")

    @app.post("/api/recipes/<recipe_id>/save")
    @login_required
    def save_recipe(recipe_id: str) -> Response:
        service().save(recipe_id, caller_id=current_user_id())
        return jsonify(message="Recipe saved")

    @app.delete("/api/recipes/<recipe_id>/save")
    @login_required
    def unsave_recipe(recipe_id: str) -> Response:
        service().unsave(recipe_id, caller_id=current_user_id())
        return jsonify(message="Recipe unsaved")

    @app.post("/api/recipes/<recipe_id>/comments")
    @login_required
    def add_comment(recipe_id: str) -> Response:
        payload = _json_body()
        comment = service().add_comment(
            recipe_id, payload.get("text", payload.get("comment")), caller_id=current_user_id()
        )
        return jsonify(message="Comment added", comment=comment.to_json())

    if isinstance(images, LocalImageStorage):
        upload_dir = images.directory

        @app.get("/uploads/<path:filename>")
        def uploaded_image(filename: str) -> Response:
            return send_from_directory(upload_dir, filename)

    return app


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _recipes_json(recipes: list[Recipe]) -> list[Dict[str, Any]]:
    return [recipe.to_json() for recipe in recipes]


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(RecipeShareError)
    def handle_domain_error(exc: RecipeShareError) -> Tuple[Response, int]:
        if exc.status_code >= 500:
            logger.error("request_failed", error=exc.message, exc_info=exc)
        return jsonify(message=exc.message), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException) -> Tuple[Response, int]:
        return jsonify(message=exc.description), exc.code or 500

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception) -> Tuple[Response, int]:
        logger.exception("unhandled_error")
        return jsonify(message="Internal server error"), 500


__all__ = ["Recipe", "Settings", "create_app"]
