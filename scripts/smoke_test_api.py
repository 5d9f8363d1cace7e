import argparse
import sys
import uuid

import requests

# Walks a running Echo server through one full session and prints each step.


class SmokeTestFailure(Exception):
    pass


def run_smoke(http, base_url: str = "", timeout: float | None = None) -> dict:
    """
    Register, earn coins, buy a theme and round-trip the progress snapshot.

    ``http`` is anything with a requests-style ``request`` method (a
    ``requests.Session`` or a FastAPI ``TestClient``). Returns the final
    progress payload.
    """
    extra = {"timeout": timeout} if timeout else {}
    headers = {}

    def call(step, method, path, expected=200, **kwargs):
        response = http.request(
            method, f"{base_url}{path}", headers=headers, **extra, **kwargs
        )
        if response.status_code != expected:
            print(f"❌ {step}: HTTP {response.status_code} {response.text}")
            raise SmokeTestFailure(f"{step} returned {response.status_code}")
        print(f"✅ {step}")
        return response.json()

    call("Health check", "GET", "/health")

    email = f"smoke-{uuid.uuid4().hex[:8]}@example.com"
    password = "smoke-pass-123"
    registered = call(
        "Register",
        "POST",
        "/api/auth/register",
        expected=201,
        json={"email": email, "password": password, "name": "Smoke Test"},
    )
    print(f"   user {registered['user']['uid']} starts with {registered['user']['userCoins']} coins")

    login = call(
        "Login",
        "POST",
        "/api/auth/login",
        json={"email": email, "password": password, "loadProgress": True},
    )
    headers["Authorization"] = f"Bearer {login['token']}"

    task = call(
        "Create task",
        "POST",
        "/api/tasks",
        expected=201,
        json={"text": "Smoke test task", "priority": "high"},
    )["task"]
    toggled = call("Complete task", "PATCH", f"/api/tasks/{task['id']}/toggle")
    print(f"   reward: {toggled['reward']}")

    call(
        "Purchase theme",
        "POST",
        "/api/users/inventory/purchase",
        json={"itemId": "theme_ocean", "itemType": "theme", "price": 15},
    )
    call(
        "Activate theme",
        "POST",
        "/api/users/theme/activate",
        json={"themeId": "theme_ocean"},
    )
    call(
        "Save progress",
        "POST",
        "/api/users/progress/save",
        json={"level": 2, "streak": 1},
    )
    progress = call("Load progress", "GET", "/api/users/progress/load")["progress"]
    print(
        f"   coins={progress['user']['userCoins']} theme={progress['activeTheme']['id']}"
    )
    call("End session", "POST", "/api/users/session/end")
    call("Logout", "POST", "/api/auth/logout")
    return progress


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Smoke test a running Echo API server."
    )
    parser.add_argument(
        "--base_url",
        default="http://localhost:8000",
        help="Server root, without the /api prefix.",
    )
    parser.add_argument("--timeout", type=float, default=10.0)
    args = parser.parse_args()

    try:
        with requests.Session() as session:
            run_smoke(session, args.base_url.rstrip("/"), timeout=args.timeout)
    except (SmokeTestFailure, requests.RequestException) as e:
        print(f"Smoke test failed: {e}")
        sys.exit(1)
    print("All smoke test steps passed.")
