import pytest
from flask import Flask, jsonify

from api.middleware.auth_middleware import AuthMiddleware


def create_app(token="testtoken"):
    app = Flask(__name__)
    AuthMiddleware.init_app(app, token)

    @app.route("/protected")
    @AuthMiddleware.require_auth
    def protected():
        return jsonify({"status": "ok"})

    return app


def test_missing_token():
    client = create_app().test_client()
    response = client.get("/protected")
    assert response.status_code == 401


def test_invalid_token():
    client = create_app().test_client()
    response = client.get("/protected", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401
    assert response.get_json()["message"] == "The provided token is invalid"


def test_wrong_scheme():
    client = create_app().test_client()
    response = client.get("/protected", headers={"Authorization": "Basic testtoken"})
    assert response.status_code == 401


def test_valid_token():
    client = create_app().test_client()
    response = client.get("/protected", headers={"Authorization": "Bearer testtoken"})
    assert response.status_code == 200


def test_token_removed_after_init():
    app = create_app()
    app.config["BOT_TOKEN"] = None
    response = app.test_client().get("/protected", headers={"Authorization": "Bearer testtoken"})
    assert response.status_code == 500


def test_init_requires_token():
    with pytest.raises(RuntimeError):
        create_app(token="")
